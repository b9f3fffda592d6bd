"""Stream relay - tees an upstream SSE body to the caller and stores the reply.

Every upstream chunk is fed to a DeltaAccumulator and then forwarded
unchanged. When upstream ends, the reassembled reply is written once as an
assistant message, a ``{"__stored": true}`` frame is appended, and the stream
closes:

    STREAMING -> UPSTREAM_DONE -> PERSISTED -> CLOSED

A transport error while reading upstream is treated like a normal end, so a
partial reply is still stored. If the caller disconnects, the rest of the
upstream body is drained without forwarding and stored as well. RelayResponse
runs that cleanup even when the body was never iterated.
"""

import logging
from enum import Enum
from typing import AsyncIterator, Mapping

import anyio
import httpx
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from chatrelay.core.sse import DeltaAccumulator, stored_frame
from chatrelay.models.conversation import ChatMessage
from chatrelay.services.history import ConversationStore

logger = logging.getLogger(__name__)


class RelayState(str, Enum):
    STREAMING = "streaming"
    UPSTREAM_DONE = "upstream_done"
    PERSISTED = "persisted"
    CLOSED = "closed"


_TRANSITIONS: dict[RelayState, set[RelayState]] = {
    RelayState.STREAMING: {RelayState.UPSTREAM_DONE},
    RelayState.UPSTREAM_DONE: {RelayState.PERSISTED},
    RelayState.PERSISTED: {RelayState.CLOSED},
    RelayState.CLOSED: set(),
}


class StreamRelay:
    """Owns one upstream streaming response for the duration of one request."""

    def __init__(self, conversation_id: int, response: httpx.Response, store: ConversationStore):
        self.conversation_id = conversation_id
        self.response = response
        self.store = store
        self.accumulator = DeltaAccumulator()
        self.state = RelayState.STREAMING
        self.interrupted = False
        self.detached = False
        self.stored_message: ChatMessage | None = None
        # Kept so a detached drain resumes the same iterator
        self._chunks = response.aiter_bytes()

    def _advance(self, new_state: RelayState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal relay transition {self.state.value} -> {new_state.value}")
        logger.debug(f"Relay {self.conversation_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    async def stream(self) -> AsyncIterator[bytes]:
        try:
            try:
                async for chunk in self._chunks:
                    self.accumulator.feed(chunk)
                    yield chunk
            except httpx.TransportError as e:
                self.interrupted = True
                logger.warning(
                    f"Upstream stream for conversation {self.conversation_id} broke off: {e!r}; "
                    f"storing {len(self.accumulator.text)} chars received so far"
                )

            self._finish()
            yield stored_frame(self.conversation_id)
        finally:
            await self.aclose()

    def _finish(self) -> None:
        self._advance(RelayState.UPSTREAM_DONE)
        self.accumulator.close()
        self.stored_message = self._persist_reply()
        self._advance(RelayState.PERSISTED)

    def _persist_reply(self) -> ChatMessage | None:
        text = self.accumulator.text
        if not text.strip():
            logger.info(f"Empty reply for conversation {self.conversation_id}; nothing stored")
            return None

        msg = self.store.append_message(self.conversation_id, "assistant", text)
        self.store.touch(self.conversation_id)
        logger.info(
            f"Stored assistant reply for conversation {self.conversation_id}: "
            f"{self.accumulator.delta_count} deltas, {len(text)} chars, "
            f"{self.accumulator.skipped} frames skipped"
        )
        return msg

    async def _drain_detached(self) -> None:
        self.detached = True
        logger.info(f"Caller left conversation {self.conversation_id} mid-stream; draining upstream")
        try:
            async for chunk in self._chunks:
                self.accumulator.feed(chunk)
        except httpx.TransportError as e:
            self.interrupted = True
            logger.warning(f"Upstream stream for conversation {self.conversation_id} broke off while draining: {e!r}")

    async def aclose(self) -> None:
        """Finish the relay if the caller went away, then close upstream.

        Safe to call more than once and whether or not ``stream()`` was ever
        iterated. Runs shielded so a cancelled request still drains and stores.
        """
        if self.state is RelayState.CLOSED:
            return
        with anyio.CancelScope(shield=True):
            if self.state is RelayState.STREAMING:
                await self._drain_detached()
                self._finish()
            await self.response.aclose()
        if self.state is RelayState.PERSISTED:
            self._advance(RelayState.CLOSED)


class RelayResponse(StreamingResponse):
    """SSE response that closes its relay even if the body was never pulled."""

    def __init__(self, relay: StreamRelay, headers: Mapping[str, str] | None = None):
        super().__init__(relay.stream(), media_type="text/event-stream", headers=headers)
        self.relay = relay

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.relay.aclose()
