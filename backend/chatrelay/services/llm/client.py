"""OpenAI-compatible chat-completion client (DeepSeek by default)."""

import logging
from typing import Any

import httpx

from chatrelay.core.config import settings
from chatrelay.models.conversation import ChatMessage

logger = logging.getLogger(__name__)

# Optional request fields forwarded only when the caller sets them
SAMPLING_PARAMS = (
    "temperature",
    "top_p",
    "max_tokens",
    "presence_penalty",
    "frequency_penalty",
    "stop",
    "response_format",
)


def build_payload(
    history: list[ChatMessage],
    *,
    model: str,
    stream: bool,
    system_prompt: str = "",
    sampling: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Completion request body with the conversation history in order."""
    messages = [{"role": m.role, "content": m.content} for m in history]
    if system_prompt and not any(m["role"] == "system" for m in messages):
        messages.insert(0, {"role": "system", "content": system_prompt})

    payload: dict[str, Any] = {"model": model, "messages": messages, "stream": stream}
    for name, value in (sampling or {}).items():
        if name in SAMPLING_PARAMS:
            payload[name] = value
    return payload


class CompletionClient:
    """Thin wrapper over a shared httpx.AsyncClient for the upstream completion API."""

    def __init__(self, http: httpx.AsyncClient, api_key: str, base_url: str | None = None):
        self.http = http
        self._api_key = api_key
        self.base_url = (base_url or settings.upstream_base_url).rstrip("/")

    @property
    def url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _log_request(self, payload: dict[str, Any]) -> None:
        logger.info(
            f"Upstream call: model={payload.get('model')} stream={payload.get('stream')} "
            f"messages={len(payload.get('messages', []))}"
        )

    async def complete(self, payload: dict[str, Any]) -> httpx.Response:
        """Send a non-streaming request and return the fully read response."""
        self._log_request(payload)
        return await self.http.post(self.url, json=payload, headers=self._headers())

    async def open_stream(self, payload: dict[str, Any]) -> httpx.Response:
        """Send a streaming request. The caller owns the open response and must close it."""
        self._log_request(payload)
        request = self.http.build_request("POST", self.url, json=payload, headers=self._headers())
        return await self.http.send(request, stream=True)
