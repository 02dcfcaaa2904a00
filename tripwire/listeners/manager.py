"""Listener lifecycle management.

Listeners are stored as data (a trigger spec plus options). Each one is
subscribed to the bus through a :class:`ListenerSubscription`, which only
knows the listener id; :meth:`ListenerManager.dispatch` looks the record up
on every trigger and interprets it.

Expiry is enforced twice: lazily when a trigger arrives for an expired
listener, and by a periodic sweep that also catches listeners whose event
never fires again.
"""

import asyncio
import uuid
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Set

import structlog

from ..events.bus import EventBus, Payload
from ..events.registry import Clock, EventRegistry, utcnow
from ..exceptions import AuthorizationError, InvalidRequestError, NotFoundError
from ..execution.bridge import ExecutionBridge
from ..execution.types import Delivered, ExecutionContext, TriggerSpec
from ..storage.models import ListenerModel, ListenerOptions
from ..storage.repositories import ListenerRepository
from ..utils.constants import DEFAULT_LISTENER_SWEEP_INTERVAL_SECONDS

logger = structlog.get_logger()


class ListenerSubscription:
    """Bus callback standing in for one listener."""

    __slots__ = ("listener_id", "_dispatch")

    def __init__(
        self,
        listener_id: str,
        dispatch: Callable[[str, Payload], Awaitable[Optional[str]]],
    ) -> None:
        self.listener_id = listener_id
        self._dispatch = dispatch

    async def __call__(self, payload: Payload) -> Optional[str]:
        return await self._dispatch(self.listener_id, payload)

    def __repr__(self) -> str:
        return f"ListenerSubscription({self.listener_id!r})"


def _validate_options(options: ListenerOptions) -> None:
    delay = options.auto_stop_after_delay_seconds
    if delay is not None and delay <= 0:
        raise InvalidRequestError("auto_stop_after_delay_seconds must be positive.")
    if options.auto_stop_after_single_event and delay:
        raise InvalidRequestError(
            "Use either auto_stop_after_single_event or "
            "auto_stop_after_delay_seconds, not both."
        )


class ListenerManager:
    """CRUD, bus registration and auto-stop rules for listeners."""

    def __init__(
        self,
        listeners: ListenerRepository,
        registry: EventRegistry,
        event_bus: EventBus,
        bridge: ExecutionBridge,
        sweep_interval_seconds: float = DEFAULT_LISTENER_SWEEP_INTERVAL_SECONDS,
        clock: Clock = utcnow,
    ) -> None:
        self.listeners = listeners
        self.registry = registry
        self.event_bus = event_bus
        self.bridge = bridge
        self.sweep_interval_seconds = sweep_interval_seconds
        self.clock = clock
        self._subscriptions: Dict[str, ListenerSubscription] = {}
        self._subscribed_event: Dict[str, str] = {}
        # Single-shot listeners that already accepted their one trigger.
        self._claimed: Set[str] = set()
        self._running = False
        self._sweep_task: Optional["asyncio.Task[None]"] = None

    async def load(self) -> int:
        """Load persisted listeners, drop expired ones, subscribe the rest."""
        now = self.clock()
        expired = 0
        for listener in await self.listeners.load():
            if listener.is_expired(now):
                logger.info(
                    "Listener expired while offline, not loading",
                    listener_id=listener.id,
                    event_id=listener.event_id,
                    owner_id=listener.owner_id,
                )
                self.listeners.discard(listener.id)
                expired += 1
                continue
            self._subscribe(listener)

        if expired:
            await self.listeners.flush()

        logger.info(
            "Listeners loaded", active=len(self.listeners), dropped_expired=expired
        )
        return len(self.listeners)

    async def start(self) -> None:
        """Start the periodic expiry sweep."""
        if self._running:
            return
        self._running = True
        self._sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "Listener sweeper started", interval_seconds=self.sweep_interval_seconds
        )

    async def stop(self) -> None:
        """Stop the periodic sweep."""
        if not self._running:
            return
        self._running = False
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
        logger.info("Listener sweeper stopped")

    # Queries

    def get_listener(self, listener_id: str) -> Optional[ListenerModel]:
        return self.listeners.get(listener_id)

    def list_listeners(self, owner_id: str) -> List[ListenerModel]:
        return self.listeners.by_owner(owner_id)

    def is_subscribed(self, listener_id: str) -> bool:
        return listener_id in self._subscriptions

    # Mutations

    async def create_listener(
        self,
        owner_id: str,
        event_id: str,
        description: str,
        trigger: TriggerSpec,
        notify: bool = True,
        options: Optional[ListenerOptions] = None,
    ) -> ListenerModel:
        """Create a listener bound to an existing event and subscribe it."""
        options = options or ListenerOptions()
        _validate_options(options)
        if self.registry.get_event(event_id) is None:
            raise NotFoundError(f'Event with ID "{event_id}" does not exist.')

        listener = ListenerModel(
            id=str(uuid.uuid4()),
            event_id=event_id,
            owner_id=owner_id,
            description=description,
            trigger=trigger,
            notify=notify,
            options=options,
            created_at=self.clock(),
        )
        self.listeners.put(listener)
        self._subscribe(listener)
        await self.listeners.flush()

        logger.info(
            "Listener created",
            listener_id=listener.id,
            event_id=event_id,
            owner_id=owner_id,
            trigger=listener.trigger.kind,
            expires_in_seconds=listener.expires_in_seconds,
        )
        return listener

    async def update_listener(
        self,
        owner_id: str,
        listener_id: str,
        event_id: str,
        description: str,
        trigger: TriggerSpec,
        notify: bool = True,
        options: Optional[ListenerOptions] = None,
    ) -> ListenerModel:
        """Replace a listener's definition, keeping its id and creation time."""
        options = options or ListenerOptions()
        _validate_options(options)
        listener = self._owned_listener(owner_id, listener_id)
        if self.registry.get_event(event_id) is None:
            raise NotFoundError(f'Event with ID "{event_id}" does not exist.')

        rebind = event_id != listener.event_id
        if rebind:
            self._unsubscribe(listener_id)

        listener.event_id = event_id
        listener.description = description
        listener.trigger = trigger
        listener.notify = notify
        listener.options = options

        if rebind:
            self._subscribe(listener)
        await self.listeners.flush()

        logger.info(
            "Listener updated",
            listener_id=listener_id,
            event_id=event_id,
            rebound=rebind,
        )
        return listener

    async def remove_listener(
        self, listener_id: str, owner_id: Optional[str] = None
    ) -> bool:
        """Unsubscribe and delete a listener.

        Safe to call repeatedly; returns False when nothing was removed.
        With ``owner_id`` given, removing another owner's listener raises
        :class:`AuthorizationError`.
        """
        listener = self.listeners.get(listener_id)
        if listener is None:
            self._unsubscribe(listener_id)
            return False
        if owner_id is not None and listener.owner_id != owner_id:
            raise AuthorizationError(
                "You do not have permission to remove this listener."
            )

        self._unsubscribe(listener_id)
        self.listeners.discard(listener_id)
        self._claimed.discard(listener_id)
        await self.listeners.flush()

        logger.info(
            "Listener removed",
            listener_id=listener_id,
            event_id=listener.event_id,
            owner_id=listener.owner_id,
        )
        return True

    async def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """Remove every listener whose auto-stop delay has passed."""
        now = now or self.clock()
        expired = [
            listener.id for listener in self.listeners if listener.is_expired(now)
        ]
        for listener_id in expired:
            logger.info("Listener expired", listener_id=listener_id)
            await self.remove_listener(listener_id)
        return expired

    # Dispatch

    async def dispatch(self, listener_id: str, payload: Payload) -> Optional[str]:
        """Handle one trigger for one listener.

        Returns the delivered text, or None when nothing was produced.
        """
        listener = self.listeners.get(listener_id)
        if listener is None:
            return None

        await self.registry.record_trigger(listener.event_id, payload)

        # The record may have been removed while the event was being stamped.
        listener = self.listeners.get(listener_id)
        if listener is None:
            return None

        if listener.is_expired(self.clock()):
            logger.info(
                "Listener expired, ignoring trigger",
                listener_id=listener_id,
                event_id=listener.event_id,
                owner_id=listener.owner_id,
            )
            await self.remove_listener(listener_id)
            return None

        single_shot = listener.options.auto_stop_after_single_event
        if single_shot:
            if listener_id in self._claimed:
                return None
            self._claimed.add(listener_id)

        try:
            result = await self.bridge.run(
                listener.trigger,
                owner_id=listener.owner_id,
                payload=payload,
                notify=listener.notify,
                context=ExecutionContext(
                    kind="listener",
                    source_id=listener.id,
                    description=listener.description,
                    event_id=listener.event_id,
                ),
            )
        finally:
            # An ignored or failed trigger still counts as handled.
            if single_shot:
                await self.remove_listener(listener_id)

        if isinstance(result, Delivered):
            return result.text
        return None

    # Internals

    def _owned_listener(self, owner_id: str, listener_id: str) -> ListenerModel:
        listener = self.listeners.get(listener_id)
        if listener is None:
            raise NotFoundError(f'Listener with ID "{listener_id}" not found.')
        if listener.owner_id != owner_id:
            raise AuthorizationError(
                "You do not have permission to update this listener."
            )
        return listener

    def _subscribe(self, listener: ListenerModel) -> None:
        subscription = self._subscriptions.get(listener.id)
        if subscription is None:
            subscription = ListenerSubscription(listener.id, self.dispatch)
            self._subscriptions[listener.id] = subscription
        self.event_bus.subscribe(listener.event_id, subscription)
        self._subscribed_event[listener.id] = listener.event_id

    def _unsubscribe(self, listener_id: str) -> None:
        subscription = self._subscriptions.pop(listener_id, None)
        event_id = self._subscribed_event.pop(listener_id, None)
        if subscription is not None and event_id is not None:
            self.event_bus.unsubscribe(event_id, subscription)

    async def _sweep_loop(self) -> None:
        """Periodically remove expired listeners."""
        while self._running:
            try:
                await asyncio.sleep(self.sweep_interval_seconds)
                await self.sweep()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Listener sweep failed")

