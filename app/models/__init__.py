from app.models.session import Completion, ConversationEntry, Session

__all__ = [
    "Session",
    "Completion",
    "ConversationEntry",
]
