"""Listener lifecycle: CRUD, bus subscriptions and auto-stop."""

from .manager import ListenerManager, ListenerSubscription

__all__ = ["ListenerManager", "ListenerSubscription"]
