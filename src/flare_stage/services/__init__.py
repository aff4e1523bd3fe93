# src/flare_stage/services/__init__.py
"""Business logic services for the Flare application."""

from .broadcaster import Audience, EventBroadcaster, EventType, get_broadcaster
from .conversations import Conversation, list_conversations
from .locks import KeyedLock
from .toggle import TargetKind, ToggleEngine, ToggleResult, get_toggle_engine

__all__ = [
    "Audience",
    "EventBroadcaster",
    "EventType",
    "get_broadcaster",
    "Conversation",
    "list_conversations",
    "KeyedLock",
    "TargetKind",
    "ToggleEngine",
    "ToggleResult",
    "get_toggle_engine",
]
