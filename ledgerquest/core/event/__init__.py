"""
Event system for LedgerQuest.

Engines publish notifications (``balance.changed``, ``quest.completed``...)
after their transaction commits.
"""

from .bus import EventBus
from .types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

__all__ = [
    "EventBus",
    "EventPayload",
    "ListenerPriority",
    "EventListener",
    "CallbackType",
]
