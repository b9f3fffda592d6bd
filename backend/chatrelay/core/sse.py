"""Server-sent event framing shared by the relay and the client consumer.

Completion APIs stream blank-line-delimited events. Each event carries a
``data:`` line holding either a JSON chunk or the literal ``[DONE]``. Network
reads split those events at arbitrary points (mid-frame, mid-line, even in
the middle of a UTF-8 sequence), so both sides push raw chunks through a
``FrameBuffer`` and only parse frames once their delimiter has arrived.

Parsing never raises. ``parse_frame`` returns a ``Frame`` whose ``kind``
tells the caller what to do with it; ``DeltaAccumulator`` skips the invalid
ones and logs each skip.
"""

import codecs
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
STORED_MARKER = "__stored"
FRAME_DELIMITER = "\n\n"


class FrameKind(str, Enum):
    EMPTY = "empty"  # no data line: comments, keep-alives
    DONE = "done"
    JSON = "json"
    INVALID = "invalid"


@dataclass
class Frame:
    kind: FrameKind
    data: str = ""
    payload: dict[str, Any] | None = None
    error: str | None = None

    @property
    def delta(self) -> str | None:
        if self.payload is None:
            return None
        return extract_delta(self.payload)

    @property
    def is_stored(self) -> bool:
        return self.payload is not None and is_stored_marker(self.payload)


class FrameBuffer:
    """Reassembles complete SSE frames from arbitrarily split chunks."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    @property
    def remainder(self) -> str:
        return self._pending

    def feed(self, chunk: bytes | str) -> list[str]:
        """Append a chunk and return every frame it completed, in order."""
        text = self._decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
        # A "\r" left at the end of the previous chunk pairs with a leading "\n" here
        buffer = (self._pending + text).replace("\r\n", "\n")
        *frames, self._pending = buffer.split(FRAME_DELIMITER)
        return frames

    def close(self) -> str:
        """Flush the decoder and drop the trailing fragment, which never got its delimiter."""
        leftover = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if leftover.strip():
            logger.debug(f"Discarding incomplete trailing SSE event ({len(leftover)} chars)")
        return leftover


def _data_value(line: str) -> str:
    value = line[len("data:"):]
    return value[1:] if value.startswith(" ") else value


def parse_frame(text: str) -> Frame:
    data_lines = [_data_value(line) for line in text.split("\n") if line.startswith("data:")]
    if not data_lines:
        return Frame(FrameKind.EMPTY)

    data = "\n".join(data_lines)
    if data.strip() == DONE_SENTINEL:
        return Frame(FrameKind.DONE, data)

    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        return Frame(FrameKind.INVALID, data, error=str(e))

    if not isinstance(payload, dict):
        return Frame(FrameKind.INVALID, data, error=f"expected a JSON object, got {type(payload).__name__}")
    return Frame(FrameKind.JSON, data, payload=payload)


def _first_choice(payload: dict[str, Any]) -> dict[str, Any]:
    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return {}


def extract_delta(payload: dict[str, Any]) -> str | None:
    """Incremental text of a streamed chunk: choices[0].delta.content."""
    delta = _first_choice(payload).get("delta")
    if isinstance(delta, dict):
        content = delta.get("content")
        if isinstance(content, str) and content:
            return content
    return None


def extract_message_content(payload: dict[str, Any]) -> str | None:
    """Reply text of a non-streaming completion: choices[0].message.content."""
    message = _first_choice(payload).get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str):
            return content
    return None


def is_stored_marker(payload: dict[str, Any]) -> bool:
    return payload.get(STORED_MARKER) is True


def stored_frame(conversation_id: int) -> bytes:
    """Terminal frame the relay appends once the assistant reply is durable."""
    body = json.dumps({STORED_MARKER: True, "conversation_id": conversation_id})
    return f"data: {body}\n\n".encode("utf-8")


class DeltaAccumulator:
    """Per-request frame buffer plus the running text of every delta seen.

    One instance belongs to exactly one relay request or one client send.
    """

    def __init__(self) -> None:
        self.frames = FrameBuffer()
        self._parts: list[str] = []
        self.skipped = 0
        self.done_seen = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def delta_count(self) -> int:
        return len(self._parts)

    def feed(self, chunk: bytes | str) -> list[Frame]:
        """Consume a chunk. Returns the usable frames it completed, in arrival order."""
        frames = []
        for raw in self.frames.feed(chunk):
            frame = parse_frame(raw)
            if frame.kind is FrameKind.INVALID:
                self.skipped += 1
                logger.warning(f"Skipping unparseable SSE frame: {frame.error} (data={frame.data[:120]!r})")
                continue
            if frame.kind is FrameKind.DONE:
                self.done_seen = True
            delta = frame.delta
            if delta:
                self._parts.append(delta)
            frames.append(frame)
        return frames

    def close(self) -> None:
        self.frames.close()
