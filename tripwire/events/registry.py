"""Event registry: the named trigger channels owners declare."""

from datetime import UTC, datetime
from typing import Any, Callable, Dict, List, Optional

import structlog

from ..exceptions import (
    AlreadyExistsError,
    AuthorizationError,
    InvalidRequestError,
    NotFoundError,
)
from ..storage.models import EventModel
from ..storage.repositories import EventRepository, ListenerRepository

logger = structlog.get_logger()

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


class EventRegistry:
    """CRUD for events plus trigger stamping."""

    def __init__(
        self,
        events: EventRepository,
        listeners: ListenerRepository,
        public_host: str,
        clock: Clock = utcnow,
    ) -> None:
        self.events = events
        self.listeners = listeners
        self.public_host = public_host
        self.clock = clock

    def webhook_url(self, event_id: str) -> str:
        """URL an external system calls to trigger ``event_id``."""
        return f"https://{self.public_host}/events/{event_id}"

    def get_event(self, event_id: str) -> Optional[EventModel]:
        return self.events.get(event_id)

    def list_events(self, owner_id: str) -> List[EventModel]:
        return self.events.by_owner(owner_id)

    async def create_event(
        self, owner_id: str, event_id: str, description: str
    ) -> EventModel:
        if event_id in self.events:
            raise AlreadyExistsError(f'Event with ID "{event_id}" already exists.')

        event = EventModel(
            event_id=event_id, description=description, owner_id=owner_id
        )
        self.events.put(event)
        await self.events.flush()

        logger.info("Event created", event_id=event_id, owner_id=owner_id)
        return event

    async def update_description(
        self, owner_id: str, event_id: str, description: str
    ) -> EventModel:
        event = self._owned_event(owner_id, event_id)
        event.description = description
        await self.events.flush()

        logger.info("Event description updated", event_id=event_id)
        return event

    async def mark_setup_done(self, owner_id: str, event_id: str) -> EventModel:
        """Record that the external trigger source is wired up."""
        event = self._owned_event(owner_id, event_id)
        event.setup_done = True
        await self.events.flush()

        logger.info("Event setup marked as done", event_id=event_id)
        return event

    async def delete_event(self, owner_id: str, event_id: str) -> EventModel:
        """Delete an event that no listener is bound to."""
        event = self._owned_event(owner_id, event_id)
        bound = self.listeners.for_event(event_id)
        if bound:
            raise InvalidRequestError(
                f'Event "{event_id}" still has {len(bound)} listener(s); '
                "remove them first."
            )
        self.events.discard(event_id)
        await self.events.flush()

        logger.info("Event deleted", event_id=event_id, owner_id=owner_id)
        return event

    async def record_trigger(
        self, event_id: str, payload: Optional[Dict[str, Any]]
    ) -> Optional[EventModel]:
        """Stamp the event with the trigger time and payload.

        Concurrent triggers overwrite each other; the last write wins.
        """
        event = self.events.get(event_id)
        if event is None:
            return None
        event.last_triggered_at = self.clock()
        event.last_payload = dict(payload) if payload is not None else None
        await self.events.flush()
        return event

    def _owned_event(self, owner_id: str, event_id: str) -> EventModel:
        event = self.events.get(event_id)
        if event is None:
            raise NotFoundError(f'Event with ID "{event_id}" does not exist.')
        if event.owner_id != owner_id:
            raise AuthorizationError(
                "You do not have permission to update this event."
            )
        return event
