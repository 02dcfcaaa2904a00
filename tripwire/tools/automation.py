"""Owner-facing automation tools.

Each tool takes the calling owner's id and a plain parameter dict (as an
assistant would produce it), validates it with pydantic and returns a
JSON-ready dict. Failures come back as ``{"error": "..."}`` instead of
raising.
"""

import functools
from typing import (
    Annotated,
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Literal,
    Mapping,
    Optional,
    Union,
)

import structlog
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from ..actions.scheduler import ActionScheduler
from ..events.registry import EventRegistry
from ..exceptions import TripwireError
from ..execution.types import TriggerSpec, trigger_from_fields
from ..listeners.manager import ListenerManager
from ..storage.models import (
    CronSchedule,
    DelaySchedule,
    ListenerOptions,
    Schedule,
)

logger = structlog.get_logger()

ToolResult = Dict[str, Any]


class _Params(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class _TriggerParams(_Params):
    """Exactly one of ``instruction`` or ``template``."""

    description: str = Field(..., min_length=1)
    instruction: Optional[str] = None
    template: Optional[str] = None
    tool_names: List[str] = Field(default_factory=list)
    notify: bool = True

    @model_validator(mode="after")
    def check_exactly_one_trigger(self) -> "_TriggerParams":
        if bool(self.instruction) == bool(self.template):
            raise ValueError(
                "Either 'instruction' or 'template' must be provided, but not both."
            )
        return self

    def to_trigger(self) -> TriggerSpec:
        return trigger_from_fields(self.instruction, self.template, self.tool_names)


class CreateEventParams(_Params):
    event_id: str = Field(..., min_length=1, max_length=128)
    description: str = Field(..., min_length=1)

    @field_validator("event_id")
    @classmethod
    def validate_event_id(cls, v: str) -> str:
        allowed = v.replace("-", "").replace("_", "").replace(".", "")
        if not allowed.isalnum() or not allowed.isascii():
            raise ValueError(
                "event_id may only contain letters, digits, '-', '_' and '.'"
            )
        return v


class EventRefParams(_Params):
    event_id: str = Field(..., min_length=1)


class UpdateEventDescriptionParams(EventRefParams):
    description: str = Field(..., min_length=1)


class CreateListenerParams(_TriggerParams):
    event_id: str = Field(..., min_length=1)
    auto_stop_after_single_event: Optional[bool] = None
    auto_stop_after_delay_seconds: Optional[int] = Field(None, gt=0)

    @model_validator(mode="after")
    def check_auto_stop(self) -> "CreateListenerParams":
        if self.auto_stop_after_single_event and self.auto_stop_after_delay_seconds:
            raise ValueError(
                "Use either auto_stop_after_single_event or "
                "auto_stop_after_delay_seconds, not both."
            )
        return self

    def to_options(self) -> ListenerOptions:
        return ListenerOptions(
            auto_stop_after_single_event=self.auto_stop_after_single_event,
            auto_stop_after_delay_seconds=self.auto_stop_after_delay_seconds,
        )


class UpdateListenerParams(CreateListenerParams):
    listener_id: str = Field(..., min_length=1)


class ListenerRefParams(_Params):
    listener_id: str = Field(..., min_length=1)


class DelayScheduleParams(_Params):
    type: Literal["delay"]
    seconds: int = Field(..., gt=0, validation_alias=AliasChoices("seconds", "time"))

    def to_schedule(self) -> Schedule:
        return DelaySchedule(seconds=self.seconds)


class CronScheduleParams(_Params):
    type: Literal["cron"]
    expression: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("expression", "time")
    )

    def to_schedule(self) -> Schedule:
        return CronSchedule(expression=self.expression)


ScheduleParams = Annotated[
    Union[DelayScheduleParams, CronScheduleParams], Field(discriminator="type")
]


class CreateActionParams(_TriggerParams):
    action_id: str = Field(..., min_length=1, max_length=128)
    schedule: ScheduleParams


class UpdateActionParams(CreateActionParams):
    pass


class ActionRefParams(_Params):
    action_id: str = Field(..., min_length=1)


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors(include_url=False):
        location = ".".join(str(part) for part in item["loc"])
        message = item["msg"]
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


ToolMethod = Callable[..., Awaitable[ToolResult]]


def tool(func: ToolMethod) -> ToolMethod:
    """Convert validation and domain errors into ``{"error": ...}``."""

    @functools.wraps(func)
    async def wrapper(
        self: "AutomationTools",
        owner_id: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> ToolResult:
        try:
            return await func(self, owner_id, dict(params or {}))
        except ValidationError as e:
            message = _format_validation_error(e)
            logger.info("Tool call rejected", tool=func.__name__, error=message)
            return {"error": message}
        except TripwireError as e:
            logger.info("Tool call failed", tool=func.__name__, error=str(e))
            return {"error": str(e)}

    return wrapper


class AutomationTools:
    """Event, listener and action management on behalf of one owner."""

    def __init__(
        self,
        registry: EventRegistry,
        listeners: ListenerManager,
        actions: ActionScheduler,
    ) -> None:
        self.registry = registry
        self.listeners = listeners
        self.actions = actions

    def tool_names(self) -> List[str]:
        return sorted(
            name
            for name in dir(self)
            if not name.startswith("_")
            and getattr(getattr(type(self), name, None), "__wrapped__", None)
        )

    # Events

    @tool
    async def create_event(self, owner_id: str, params: Dict[str, Any]) -> ToolResult:
        p = CreateEventParams.model_validate(params)
        event = await self.registry.create_event(owner_id, p.event_id, p.description)
        return {
            **event.to_dict(),
            "webhook_url": self.registry.webhook_url(event.event_id),
            "message": (
                "Event created. Call the webhook URL with a 'token' header of "
                "the form '<name>:<events secret>' to trigger it."
            ),
        }

    @tool
    async def list_events(self, owner_id: str, params: Dict[str, Any]) -> ToolResult:
        events = []
        for event in self.registry.list_events(owner_id):
            entry = event.to_dict()
            entry["webhook_url"] = self.registry.webhook_url(event.event_id)
            entry["listener_count"] = len(
                self.listeners.listeners.for_event(event.event_id)
            )
            events.append(entry)
        return {"events": events}

    @tool
    async def update_event_description(
        self, owner_id: str, params: Dict[str, Any]
    ) -> ToolResult:
        p = UpdateEventDescriptionParams.model_validate(params)
        event = await self.registry.update_description(
            owner_id, p.event_id, p.description
        )
        return {**event.to_dict(), "message": "Event description updated."}

    @tool
    async def mark_event_setup_done(
        self, owner_id: str, params: Dict[str, Any]
    ) -> ToolResult:
        p = EventRefParams.model_validate(params)
        event = await self.registry.mark_setup_done(owner_id, p.event_id)
        return {**event.to_dict(), "message": "Event marked as set up."}

    @tool
    async def delete_event(self, owner_id: str, params: Dict[str, Any]) -> ToolResult:
        p = EventRefParams.model_validate(params)
        await self.registry.delete_event(owner_id, p.event_id)
        return {"event_id": p.event_id, "message": "Event deleted."}

    # Listeners

    @tool
    async def create_listener(
        self, owner_id: str, params: Dict[str, Any]
    ) -> ToolResult:
        p = CreateListenerParams.model_validate(params)
        listener = await self.listeners.create_listener(
            owner_id,
            p.event_id,
            p.description,
            p.to_trigger(),
            notify=p.notify,
            options=p.to_options(),
        )
        return {**listener.to_dict(), "message": "Listener created."}

    @tool
    async def update_listener(
        self, owner_id: str, params: Dict[str, Any]
    ) -> ToolResult:
        p = UpdateListenerParams.model_validate(params)
        listener = await self.listeners.update_listener(
            owner_id,
            p.listener_id,
            p.event_id,
            p.description,
            p.to_trigger(),
            notify=p.notify,
            options=p.to_options(),
        )
        return {**listener.to_dict(), "message": "Listener updated."}

    @tool
    async def remove_listener(
        self, owner_id: str, params: Dict[str, Any]
    ) -> ToolResult:
        p = ListenerRefParams.model_validate(params)
        removed = await self.listeners.remove_listener(p.listener_id, owner_id)
        return {
            "listener_id": p.listener_id,
            "removed": removed,
            "message": "Listener removed." if removed else "Listener not found.",
        }

    @tool
    async def list_listeners(
        self, owner_id: str, params: Dict[str, Any]
    ) -> ToolResult:
        return {
            "listeners": [
                listener.to_dict()
                for listener in self.listeners.list_listeners(owner_id)
            ]
        }

    # Actions

    @tool
    async def create_action(self, owner_id: str, params: Dict[str, Any]) -> ToolResult:
        p = CreateActionParams.model_validate(params)
        action = await self.actions.create_action(
            owner_id,
            p.action_id,
            p.description,
            p.schedule.to_schedule(),
            p.to_trigger(),
            notify=p.notify,
        )
        return {**action.to_dict(), "message": "Action created and scheduled."}

    @tool
    async def update_action(self, owner_id: str, params: Dict[str, Any]) -> ToolResult:
        p = UpdateActionParams.model_validate(params)
        action = await self.actions.update_action(
            owner_id,
            p.action_id,
            p.description,
            p.schedule.to_schedule(),
            p.to_trigger(),
            notify=p.notify,
        )
        return {**action.to_dict(), "message": "Action updated and rescheduled."}

    @tool
    async def remove_action(self, owner_id: str, params: Dict[str, Any]) -> ToolResult:
        p = ActionRefParams.model_validate(params)
        removed = await self.actions.remove_action(p.action_id, owner_id)
        return {
            "action_id": p.action_id,
            "removed": removed,
            "message": "Action removed." if removed else "Action not found.",
        }

    @tool
    async def list_actions(self, owner_id: str, params: Dict[str, Any]) -> ToolResult:
        return {
            "actions": [
                action.to_dict() for action in self.actions.list_actions(owner_id)
            ]
        }
