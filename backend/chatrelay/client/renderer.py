"""Rendering surface for the chat client and a plain terminal implementation."""

import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, TextIO


@dataclass
class HistoryMessage:
    role: str  # "system" | "user" | "assistant"
    content: str
    created_at: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryMessage":
        return cls(role=data["role"], content=data["content"], created_at=data.get("created_at", ""))


@dataclass
class ConversationView:
    """View-model owned by the client controller."""

    conversation_id: int | None = None
    messages: list[HistoryMessage] = field(default_factory=list)
    streaming_text: str = ""
    sending: bool = False
    error: str | None = None


class ChatRenderer(ABC):
    @abstractmethod
    def show_user(self, text: str) -> None:
        """Show the user's message as soon as it is sent."""
        ...

    @abstractmethod
    def begin_assistant(self) -> None:
        """Open an empty assistant bubble that deltas stream into."""
        ...

    @abstractmethod
    def append_delta(self, text: str) -> None:
        """Append one streamed text fragment to the open assistant bubble."""
        ...

    @abstractmethod
    def show_error(self, message: str) -> None:
        ...

    @abstractmethod
    def render_history(self, messages: list[HistoryMessage]) -> None:
        """Replace what is shown with the stored conversation."""
        ...


class TerminalRenderer(ChatRenderer):
    LABELS = {"user": "you", "assistant": "ai", "system": "system"}

    def __init__(self, out: TextIO | None = None, redraw: bool = False):
        self.out = out or sys.stdout
        self.redraw = redraw

    def _write(self, text: str) -> None:
        self.out.write(text)
        self.out.flush()

    def show_user(self, text: str) -> None:
        self._write(f"{self.LABELS['user']}> {text}\n")

    def begin_assistant(self) -> None:
        self._write(f"{self.LABELS['assistant']}> ")

    def append_delta(self, text: str) -> None:
        self._write(text)

    def show_error(self, message: str) -> None:
        self._write(f"\n[error] {message}\n")

    def render_history(self, messages: list[HistoryMessage]) -> None:
        if not self.redraw:
            # The streamed text is already on screen; just end the line
            self._write(f"\n[{len(messages)} messages saved]\n")
            return

        self._write("\x1b[2J\x1b[H")
        for msg in messages:
            label = self.LABELS.get(msg.role, msg.role)
            self._write(f"{label}> {msg.content}\n")
