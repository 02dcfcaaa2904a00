"""Scheduled actions."""

from .scheduler import ActionScheduler, validate_schedule

__all__ = ["ActionScheduler", "validate_schedule"]
