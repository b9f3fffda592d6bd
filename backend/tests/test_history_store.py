"""Tests for the conversation history store."""

from datetime import datetime, timezone

import pytest
from sqlmodel import Session

from chatrelay.models.conversation import ChatMessage
from tests.conftest import seed_conversation, test_engine


def test_exists(store):
    cid = seed_conversation()
    assert store.exists(cid)
    assert not store.exists(cid + 1)


def test_fetch_messages_breaks_timestamp_ties_by_insertion_order(store):
    cid = seed_conversation()
    same_instant = datetime(2026, 1, 1, tzinfo=timezone.utc)
    with Session(test_engine) as session:
        for content in ("first", "second", "third"):
            session.add(ChatMessage(conversation_id=cid, role="user", content=content, created_at=same_instant))
            session.commit()

    assert [m.content for m in store.fetch_messages(cid)] == ["first", "second", "third"]


def test_append_message_returns_stored_row(store):
    cid = seed_conversation()
    msg = store.append_message(cid, "assistant", "reply")
    assert msg.id is not None
    assert msg.role == "assistant"
    assert [m.content for m in store.fetch_messages(cid)] == ["reply"]


def test_list_conversations_newest_activity_first(store):
    older = seed_conversation("older")
    newer = seed_conversation("newer")
    store.touch(older)
    assert [c.id for c in store.list_conversations()] == [older, newer]


def test_delete_conversation_removes_messages(store):
    cid = seed_conversation(messages=[("user", "a"), ("assistant", "b")])
    assert store.delete_conversation(cid)
    assert not store.exists(cid)
    assert store.fetch_messages(cid) == []
    assert not store.delete_conversation(cid)


def test_append_message_rejects_unknown_role(store):
    cid = seed_conversation()
    with pytest.raises(ValueError, match="tool"):
        store.append_message(cid, "tool", "output")
    assert store.fetch_messages(cid) == []
