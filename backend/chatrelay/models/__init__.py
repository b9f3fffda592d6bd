from chatrelay.models.conversation import ChatMessage, Conversation

__all__ = ["ChatMessage", "Conversation"]
