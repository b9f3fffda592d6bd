"""Chat endpoint - relays a user message to the completion API and stores the reply."""

import json
import logging
import re
from typing import Any

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from pydantic import BaseModel, ValidationError

from chatrelay.core.config import settings
from chatrelay.core.errors import ChatRequestError
from chatrelay.core.sse import extract_message_content
from chatrelay.services.history import ConversationStore, get_store
from chatrelay.services.llm import get_http_client
from chatrelay.services.llm.client import SAMPLING_PARAMS, CompletionClient, build_payload
from chatrelay.services.relay import RelayResponse, StreamRelay

router = APIRouter()
logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "X-Accel-Buffering": "no",
}


class ChatRequest(BaseModel):
    conversation_id: int | None = None
    content: str | None = None
    stream: bool = True
    model: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    presence_penalty: float | None = None
    frequency_penalty: float | None = None
    stop: str | list[str] | None = None
    response_format: dict[str, Any] | None = None

    def sampling(self) -> dict[str, Any]:
        return self.model_dump(include=set(SAMPLING_PARAMS), exclude_unset=True)


_BEARER_PREFIX = re.compile(r"^[Bb]earer\s+")


def _caller_key(request: Request) -> str:
    # "Bearer <key>" or the bare key
    header = request.headers.get("authorization", "")
    return _BEARER_PREFIX.sub("", header).strip()


async def _parse_request(request: Request) -> ChatRequest:
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ChatRequestError(400, "Invalid JSON body")

    try:
        return ChatRequest.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "body"
        raise ChatRequestError(400, f"Invalid field '{field}': {first['msg']}")


@router.post("")
async def chat(
    request: Request,
    store: ConversationStore = Depends(get_store),
    http_client: httpx.AsyncClient = Depends(get_http_client),
):
    body = await _parse_request(request)

    if body.conversation_id is None:
        raise ChatRequestError(400, "conversation_id is required")
    text = (body.content or "").strip()
    if not text:
        raise ChatRequestError(400, "content is required")

    # Bring-your-own-key header wins over the configured key
    api_key = _caller_key(request) or settings.upstream_api_key
    if not api_key:
        raise ChatRequestError(401, "Missing upstream API key")

    conversation_id = body.conversation_id
    if not store.exists(conversation_id):
        logger.debug(f"Chat: conversation {conversation_id} not found")
        raise ChatRequestError(404, "Conversation not found")

    store.append_message(conversation_id, "user", text)
    payload = build_payload(
        store.fetch_messages(conversation_id),
        model=body.model or settings.upstream_model,
        stream=body.stream,
        system_prompt=settings.system_prompt,
        sampling=body.sampling(),
    )
    client = CompletionClient(http_client, api_key)

    if not body.stream:
        return await _complete(client, payload, store, conversation_id)
    return await _relay(client, payload, store, conversation_id)


async def _complete(
    client: CompletionClient, payload: dict[str, Any], store: ConversationStore, conversation_id: int
) -> Response:
    try:
        upstream = await client.complete(payload)
    except httpx.TransportError as e:
        logger.error(f"Upstream request failed: {e!r}")
        raise ChatRequestError(502, f"Upstream request failed: {e}")

    try:
        data = upstream.json()
    except ValueError:
        data = None
    reply = extract_message_content(data) if isinstance(data, dict) else None

    if reply and reply.strip():
        store.append_message(conversation_id, "assistant", reply)
        store.touch(conversation_id)
    elif upstream.is_success:
        logger.warning(f"Upstream completion for conversation {conversation_id} had no reply text")
    else:
        logger.warning(f"Upstream returned {upstream.status_code} for conversation {conversation_id}")

    # Passed through verbatim, including upstream error shapes
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type", "application/json; charset=utf-8"),
    )


async def _relay(
    client: CompletionClient, payload: dict[str, Any], store: ConversationStore, conversation_id: int
) -> Response:
    try:
        upstream = await client.open_stream(payload)
    except httpx.TransportError as e:
        logger.error(f"Upstream request failed: {e!r}")
        raise ChatRequestError(502, f"Upstream request failed: {e}")

    if not upstream.is_success:
        error_body = await upstream.aread()
        await upstream.aclose()
        logger.warning(f"Upstream returned {upstream.status_code} for conversation {conversation_id}")
        return Response(
            content=error_body,
            status_code=upstream.status_code,
            media_type="application/json; charset=utf-8",
        )

    relay = StreamRelay(conversation_id, upstream, store)
    return RelayResponse(relay, headers=SSE_HEADERS)
