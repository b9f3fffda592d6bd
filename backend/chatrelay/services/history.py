"""Conversation history store used by the chat relay."""

import logging
from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from chatrelay.core import database
from chatrelay.models.conversation import ROLES, ChatMessage, Conversation

logger = logging.getLogger(__name__)


class ConversationStore:
    """Short-lived sessions per call, so writes are durable as soon as the call returns."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def exists(self, conversation_id: int) -> bool:
        with Session(self.engine) as session:
            return session.get(Conversation, conversation_id) is not None

    def get_conversation(self, conversation_id: int) -> Conversation | None:
        with Session(self.engine) as session:
            return session.get(Conversation, conversation_id)

    def create_conversation(self, title: str = "New Conversation") -> Conversation:
        with Session(self.engine) as session:
            conv = Conversation(title=title)
            session.add(conv)
            session.commit()
            session.refresh(conv)
            return conv

    def list_conversations(self) -> list[Conversation]:
        with Session(self.engine) as session:
            return list(session.exec(
                select(Conversation).order_by(Conversation.updated_at.desc())  # type: ignore
            ).all())

    def append_message(self, conversation_id: int, role: str, content: str) -> ChatMessage:
        if role not in ROLES:
            raise ValueError(f"Unknown message role: {role!r}")
        with Session(self.engine) as session:
            msg = ChatMessage(conversation_id=conversation_id, role=role, content=content)
            session.add(msg)
            session.commit()
            session.refresh(msg)
            logger.debug(f"Stored {role} message {msg.id} in conversation {conversation_id}")
            return msg

    def fetch_messages(self, conversation_id: int) -> list[ChatMessage]:
        """Messages in conversation order: created_at, then insertion order."""
        with Session(self.engine) as session:
            return list(session.exec(
                select(ChatMessage)
                .where(ChatMessage.conversation_id == conversation_id)
                .order_by(ChatMessage.created_at, ChatMessage.id)  # type: ignore
            ).all())

    def touch(self, conversation_id: int) -> None:
        with Session(self.engine) as session:
            conv = session.get(Conversation, conversation_id)
            if conv:
                conv.updated_at = datetime.now(timezone.utc)
                session.add(conv)
                session.commit()

    def delete_conversation(self, conversation_id: int) -> bool:
        with Session(self.engine) as session:
            conv = session.get(Conversation, conversation_id)
            if not conv:
                return False

            # Delete messages first
            messages = session.exec(
                select(ChatMessage).where(ChatMessage.conversation_id == conversation_id)
            ).all()
            for msg in messages:
                session.delete(msg)

            session.delete(conv)
            session.commit()
            return True


def get_store() -> ConversationStore:
    return ConversationStore(database.engine)
