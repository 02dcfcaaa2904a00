"""Data models for storage.

Using dataclasses for simplicity and type safety.
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Dict, Literal, Optional, Tuple, Union

import aiosqlite

from ..execution.types import (
    TriggerSpec,
    trigger_from_fields,
    trigger_to_fields,
)


def _parse_datetime(value: Any) -> Any:
    """Parse datetime values from SQLite rows.

    With sqlite3 converters enabled, values may already be datetime instances.
    Without converters, values may be ISO strings.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value)
    else:
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _load_json(value: Any) -> Any:
    if value is None or not isinstance(value, (str, bytes)):
        return value
    return json.loads(value)


def _dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _trigger_dict(trigger: TriggerSpec) -> Dict[str, Any]:
    data = trigger_to_fields(trigger)
    return {key: value for key, value in data.items() if value is not None}


@dataclass
class EventModel:
    """Event data model."""

    event_id: str
    description: str
    owner_id: str
    setup_done: bool = False
    last_triggered_at: Optional[datetime] = None
    last_payload: Optional[Dict[str, Any]] = None

    @property
    def key(self) -> str:
        return self.event_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "event_id": self.event_id,
            "description": self.description,
            "owner_id": self.owner_id,
            "setup_done": self.setup_done,
            "last_triggered_at": (
                self.last_triggered_at.isoformat() if self.last_triggered_at else None
            ),
            "last_payload": self.last_payload,
        }

    def to_row(self) -> Tuple[Any, ...]:
        return (
            self.event_id,
            self.description,
            self.owner_id,
            self.setup_done,
            self.last_triggered_at,
            _dump_json(self.last_payload),
        )

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "EventModel":
        """Create from database row."""
        data = dict(row)
        return cls(
            event_id=data["event_id"],
            description=data["description"],
            owner_id=data["owner_id"],
            setup_done=bool(data.get("setup_done")),
            last_triggered_at=_parse_datetime(data.get("last_triggered_at")),
            last_payload=_load_json(data.get("last_payload")),
        )


@dataclass
class ListenerOptions:
    """Auto-stop behaviour of a listener.

    Unless set explicitly, a listener is single-shot only when it has no
    auto-stop delay.
    """

    auto_stop_after_single_event: Optional[bool] = None
    auto_stop_after_delay_seconds: Optional[int] = None

    def __post_init__(self) -> None:
        if self.auto_stop_after_single_event is None:
            self.auto_stop_after_single_event = (
                self.auto_stop_after_delay_seconds is None
            )


@dataclass
class ListenerModel:
    """Listener data model."""

    id: str
    event_id: str
    owner_id: str
    description: str
    trigger: TriggerSpec
    notify: bool = True
    options: ListenerOptions = field(default_factory=ListenerOptions)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def key(self) -> str:
        return self.id

    @property
    def expires_in_seconds(self) -> Optional[int]:
        return self.options.auto_stop_after_delay_seconds

    @property
    def expires_at(self) -> Optional[datetime]:
        if not self.expires_in_seconds:
            return None
        return self.created_at + timedelta(seconds=self.expires_in_seconds)

    def is_expired(self, now: datetime) -> bool:
        """Check whether the auto-stop delay has elapsed."""
        expires_at = self.expires_at
        return expires_at is not None and now > expires_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data: Dict[str, Any] = {
            "listener_id": self.id,
            "event_id": self.event_id,
            "owner_id": self.owner_id,
            "description": self.description,
            "notify": self.notify,
            "options": {
                "auto_stop_after_single_event": (
                    self.options.auto_stop_after_single_event
                ),
                "auto_stop_after_delay_seconds": (
                    self.options.auto_stop_after_delay_seconds
                ),
            },
            "created_at": self.created_at.isoformat(),
            "expires_in_seconds": self.expires_in_seconds,
        }
        data.update(_trigger_dict(self.trigger))
        return data

    def to_row(self) -> Tuple[Any, ...]:
        fields = trigger_to_fields(self.trigger)
        return (
            self.id,
            self.event_id,
            self.owner_id,
            self.description,
            fields["instruction"],
            fields["template"],
            _dump_json(fields["tool_names"]),
            self.notify,
            self.options.auto_stop_after_single_event,
            self.options.auto_stop_after_delay_seconds,
            self.created_at,
        )

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "ListenerModel":
        """Create from database row."""
        data = dict(row)
        return cls(
            id=data["id"],
            event_id=data["event_id"],
            owner_id=data["owner_id"],
            description=data["description"],
            trigger=trigger_from_fields(
                data.get("instruction"),
                data.get("template"),
                _load_json(data.get("tool_names")),
            ),
            notify=bool(data.get("notify", True)),
            options=ListenerOptions(
                auto_stop_after_single_event=bool(
                    data.get("auto_stop_after_single_event")
                ),
                auto_stop_after_delay_seconds=data.get(
                    "auto_stop_after_delay_seconds"
                ),
            ),
            created_at=_parse_datetime(data["created_at"]),
        )


@dataclass(frozen=True)
class DelaySchedule:
    """Run once, `seconds` after the action was created."""

    seconds: int
    type: Literal["delay"] = "delay"


@dataclass(frozen=True)
class CronSchedule:
    """Run on a crontab expression until removed."""

    expression: str
    type: Literal["cron"] = "cron"


Schedule = Union[DelaySchedule, CronSchedule]


@dataclass
class ActionModel:
    """Scheduled action data model."""

    action_id: str
    description: str
    owner_id: str
    schedule: Schedule
    trigger: TriggerSpec
    notify: bool = True
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def key(self) -> str:
        return self.action_id

    @property
    def is_recurring(self) -> bool:
        return isinstance(self.schedule, CronSchedule)

    def due_at(self) -> Optional[datetime]:
        """When a delay action should run; None for cron actions."""
        if isinstance(self.schedule, DelaySchedule):
            return self.created_at + timedelta(seconds=self.schedule.seconds)
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        if isinstance(self.schedule, DelaySchedule):
            schedule: Dict[str, Any] = {
                "type": "delay",
                "seconds": self.schedule.seconds,
            }
        else:
            schedule = {"type": "cron", "expression": self.schedule.expression}
        data: Dict[str, Any] = {
            "action_id": self.action_id,
            "description": self.description,
            "owner_id": self.owner_id,
            "schedule": schedule,
            "notify": self.notify,
            "created_at": self.created_at.isoformat(),
        }
        data.update(_trigger_dict(self.trigger))
        return data

    def to_row(self) -> Tuple[Any, ...]:
        fields = trigger_to_fields(self.trigger)
        seconds = (
            self.schedule.seconds if isinstance(self.schedule, DelaySchedule) else None
        )
        expression = (
            self.schedule.expression
            if isinstance(self.schedule, CronSchedule)
            else None
        )
        return (
            self.action_id,
            self.description,
            self.owner_id,
            self.schedule.type,
            seconds,
            expression,
            fields["instruction"],
            fields["template"],
            _dump_json(fields["tool_names"]),
            self.notify,
            self.created_at,
        )

    @classmethod
    def from_row(cls, row: aiosqlite.Row) -> "ActionModel":
        """Create from database row."""
        data = dict(row)
        schedule: Schedule
        if data["schedule_type"] == "delay":
            schedule = DelaySchedule(seconds=int(data["schedule_seconds"]))
        elif data["schedule_type"] == "cron":
            schedule = CronSchedule(expression=data["schedule_expression"])
        else:
            raise ValueError(f"Unknown schedule type: {data['schedule_type']}")
        return cls(
            action_id=data["action_id"],
            description=data["description"],
            owner_id=data["owner_id"],
            schedule=schedule,
            trigger=trigger_from_fields(
                data.get("instruction"),
                data.get("template"),
                _load_json(data.get("tool_names")),
            ),
            notify=bool(data.get("notify", True)),
            created_at=_parse_datetime(data["created_at"]),
        )
