"""Persistence for events, listeners and actions."""

from .database import DatabaseManager
from .facade import Storage
from .models import (
    ActionModel,
    CronSchedule,
    DelaySchedule,
    EventModel,
    ListenerModel,
    ListenerOptions,
)
from .repositories import ActionRepository, EventRepository, ListenerRepository

__all__ = [
    "ActionModel",
    "ActionRepository",
    "CronSchedule",
    "DatabaseManager",
    "DelaySchedule",
    "EventModel",
    "EventRepository",
    "ListenerModel",
    "ListenerOptions",
    "ListenerRepository",
    "Storage",
]
