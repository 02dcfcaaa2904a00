"""Event bus and event registry."""

from .bus import EventBus, EventCallback, Payload
from .registry import EventRegistry

__all__ = ["EventBus", "EventCallback", "EventRegistry", "Payload"]
