"""Python client for the chat relay."""

from chatrelay.client.consumer import SendResult, StreamConsumer
from chatrelay.client.renderer import ChatRenderer, ConversationView, HistoryMessage, TerminalRenderer

__all__ = [
    "ChatRenderer",
    "ConversationView",
    "HistoryMessage",
    "SendResult",
    "StreamConsumer",
    "TerminalRenderer",
]
