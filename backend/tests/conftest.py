"""Shared test fixtures for backend tests."""

import json
from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from chatrelay.core.config import settings
from chatrelay.models.conversation import ChatMessage, Conversation
from chatrelay.services.history import ConversationStore, get_store
from chatrelay.services.llm import get_http_client

# In-memory SQLite with StaticPool so all connections (including threads) share one DB
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def sse(payload) -> bytes:
    """One upstream SSE frame."""
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n".encode("utf-8")


def delta_chunk(text: str) -> dict:
    return {"choices": [{"index": 0, "delta": {"content": text}}]}


def seed_conversation(title="Test Chat", messages=None) -> int:
    """Insert a conversation + messages directly into the test DB."""
    with Session(test_engine) as session:
        conv = Conversation(title=title)
        session.add(conv)
        session.commit()
        session.refresh(conv)

        if messages:
            for role, content in messages:
                session.add(ChatMessage(conversation_id=conv.id, role=role, content=content))
            session.commit()

        return conv.id  # type: ignore


def stored_messages(conversation_id: int) -> list[tuple[str, str]]:
    return [(m.role, m.content) for m in ConversationStore(test_engine).fetch_messages(conversation_id)]


class FakeUpstream:
    """Scripted stand-in for the completion API, served through httpx.MockTransport."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.chunks: list[bytes] = []
        self.status_code = 200
        self.json_body: dict = {"choices": [{"message": {"role": "assistant", "content": ""}}]}
        self.error_after_chunks: Exception | None = None
        self.connect_error = False

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    async def _body(self):
        for chunk in self.chunks:
            yield chunk
        if self.error_after_chunks is not None:
            raise self.error_after_chunks

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.connect_error:
            raise httpx.ConnectError("connection refused", request=request)

        payload = json.loads(request.content)
        if self.status_code != 200 or not payload.get("stream"):
            return httpx.Response(self.status_code, json=self.json_body)
        return httpx.Response(
            200,
            headers={"content-type": "text/event-stream"},
            content=self._body(),
        )

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture(autouse=True)
def setup_test_db():
    """Create all tables before each test, drop after."""
    import chatrelay.models  # noqa: F401 - register models
    SQLModel.metadata.create_all(test_engine)
    yield
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture
def store():
    return ConversationStore(test_engine)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def client(upstream):
    """FastAPI TestClient with the database and the upstream API patched."""
    with (
        patch("chatrelay.core.database.engine", test_engine),
        patch.object(settings, "upstream_api_key", "test-key"),
    ):
        from chatrelay.main import app

        mock_http = upstream.http_client()
        app.dependency_overrides[get_store] = lambda: ConversationStore(test_engine)
        app.dependency_overrides[get_http_client] = lambda: mock_http

        with TestClient(app) as c:
            yield c

        app.dependency_overrides.clear()
