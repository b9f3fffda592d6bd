"""REST API for conversation history management."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from chatrelay.models.conversation import Conversation
from chatrelay.services.history import ConversationStore, get_store

router = APIRouter()
logger = logging.getLogger(__name__)


class ConversationCreate(BaseModel):
    title: str = "New Conversation"


def _summary(conv: Conversation) -> dict:
    return {
        "id": conv.id,
        "title": conv.title,
        "created_at": conv.created_at.isoformat(),
        "updated_at": conv.updated_at.isoformat(),
    }


@router.get("/")
async def list_conversations(store: ConversationStore = Depends(get_store)):
    return [_summary(c) for c in store.list_conversations()]


@router.post("/", status_code=201)
async def create_conversation(body: ConversationCreate, store: ConversationStore = Depends(get_store)):
    title = body.title.strip()[:80] or "New Conversation"
    conv = store.create_conversation(title)
    logger.debug(f"Created conversation {conv.id}")
    return _summary(conv)


@router.get("/{conversation_id}")
async def get_conversation(conversation_id: int, store: ConversationStore = Depends(get_store)):
    conv = store.get_conversation(conversation_id)
    if not conv:
        logger.debug(f"Conversation {conversation_id} not found")
        raise HTTPException(status_code=404, detail="Conversation not found")

    messages = store.fetch_messages(conversation_id)
    return {
        **_summary(conv),
        "messages": [
            {
                "id": m.id,
                "role": m.role,
                "content": m.content,
                "created_at": m.created_at.isoformat(),
            }
            for m in messages
        ],
    }


@router.delete("/{conversation_id}")
async def delete_conversation(conversation_id: int, store: ConversationStore = Depends(get_store)):
    if not store.delete_conversation(conversation_id):
        logger.debug(f"Delete: conversation {conversation_id} not found")
        raise HTTPException(status_code=404, detail="Conversation not found")

    logger.debug(f"Deleted conversation {conversation_id}")
    return {"status": "deleted"}
