"""Client side of the chat relay: sends a message and renders the streamed reply.

The streamed text is provisional. Once the relay's ``__stored`` frame
arrives the client re-fetches the conversation and renders that instead. If
the frame never arrives (dropped connection) a delayed re-fetch is tried so
the view does not stay out of sync.
"""

import asyncio
import json
import logging
from dataclasses import asdict, dataclass

import httpx

from chatrelay.client.renderer import ChatRenderer, ConversationView, HistoryMessage
from chatrelay.core.sse import DeltaAccumulator

logger = logging.getLogger(__name__)

# A reachable relay can still answer with a non-JSON page or an unexpected shape
RECONCILE_ERRORS = (httpx.HTTPError, ValueError, KeyError, TypeError)


@dataclass
class SendResult:
    sent: bool
    status_code: int | None = None
    text: str = ""
    stored: bool = False
    reconciled: bool = False
    error: str | None = None


class StreamConsumer:
    def __init__(
        self,
        http: httpx.AsyncClient,
        renderer: ChatRenderer,
        reconcile_delay: float = 1.0,
        view: ConversationView | None = None,
    ):
        self.http = http
        self.renderer = renderer
        self.reconcile_delay = reconcile_delay
        self.view = view or ConversationView()

    async def create_conversation(self, title: str = "New Conversation") -> int:
        resp = await self.http.post("/api/conversations/", json={"title": title})
        resp.raise_for_status()
        conversation_id = resp.json()["id"]
        self.view = ConversationView(conversation_id=conversation_id)
        return conversation_id

    async def fetch_history(self, conversation_id: int) -> list[HistoryMessage]:
        resp = await self.http.get(f"/api/conversations/{conversation_id}")
        resp.raise_for_status()
        return [HistoryMessage.from_dict(m) for m in resp.json()["messages"]]

    async def reconcile(self, conversation_id: int) -> list[HistoryMessage]:
        """Fetch the stored conversation and render it as the source of truth."""
        messages = await self.fetch_history(conversation_id)
        self.view.conversation_id = conversation_id
        self.view.messages = messages
        self.view.streaming_text = ""
        self.renderer.render_history(messages)
        return messages

    async def export_history(self, conversation_id: int) -> str:
        """Stored conversation as an indented JSON array, for saving to a file."""
        messages = await self.fetch_history(conversation_id)
        return json.dumps([asdict(m) for m in messages], indent=2, ensure_ascii=False)

    def _fail(self, result: SendResult, message: str) -> None:
        result.error = message
        self.view.error = message
        self.renderer.show_error(message)

    async def send(self, conversation_id: int, text: str) -> SendResult:
        text = text.strip()
        if not text or self.view.sending:
            return SendResult(sent=False)

        self.view.sending = True
        self.view.conversation_id = conversation_id
        self.view.streaming_text = ""
        self.view.error = None
        try:
            result = await self._stream_reply(conversation_id, text)
            if result.status_code is not None and not httpx.codes.is_success(result.status_code):
                # Rejected before streaming began; nothing to reconcile
                return result
            await self._reconcile_after(result, conversation_id)
            return result
        finally:
            self.view.sending = False

    async def _stream_reply(self, conversation_id: int, text: str) -> SendResult:
        self.renderer.show_user(text)
        self.renderer.begin_assistant()

        result = SendResult(sent=True)
        accumulator = DeltaAccumulator()
        body = {"conversation_id": conversation_id, "content": text, "stream": True}
        try:
            async with self.http.stream("POST", "/api/chat", json=body) as response:
                result.status_code = response.status_code
                if not response.is_success:
                    detail = (await response.aread()).decode("utf-8", errors="replace")
                    self._fail(result, f"Error {response.status_code}\n{detail}")
                    return result

                async for chunk in response.aiter_bytes():
                    for frame in accumulator.feed(chunk):
                        if frame.is_stored:
                            result.stored = True
                            continue
                        delta = frame.delta
                        if delta:
                            self.view.streaming_text += delta
                            self.renderer.append_delta(delta)
            accumulator.close()
        except httpx.TransportError as e:
            self._fail(result, f"Network error: {e}")
        result.text = accumulator.text
        return result

    async def _fallback_pause(self) -> None:
        await asyncio.sleep(self.reconcile_delay)

    async def _reconcile_after(self, result: SendResult, conversation_id: int) -> None:
        if result.stored:
            try:
                await self.reconcile(conversation_id)
                result.reconciled = True
            except RECONCILE_ERRORS as e:
                logger.warning(f"Reconciliation for conversation {conversation_id} failed: {e}")
            return

        await self._fallback_pause()
        try:
            await self.reconcile(conversation_id)
            result.reconciled = True
        except RECONCILE_ERRORS as e:
            logger.debug(f"Fallback reconciliation for conversation {conversation_id} failed: {e}")
