"""Session management: conversation persistence and replay."""

from stormy.session.session import Session
from stormy.session.store import ConversationStore

__all__ = [
    "ConversationStore",
    "Session",
]
