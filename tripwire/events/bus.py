"""Central async event bus.

Decouples trigger sources (webhooks, internal producers) from the
listeners reacting to them. Subscriptions are keyed by event id.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

import structlog

logger = structlog.get_logger()

Payload = Dict[str, Any]
EventCallback = Callable[[Payload], Union[Any, Awaitable[Any]]]


def _callback_name(callback: EventCallback) -> str:
    return getattr(callback, "__qualname__", None) or type(callback).__name__


class EventBus:
    """Async publish/subscribe keyed by event id.

    Callbacks may be plain functions or coroutine functions. A failing
    callback is logged and never affects its siblings or the publisher.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[EventCallback]] = {}
        self._pending: Set["asyncio.Task[Any]"] = set()

    def subscribe(self, event_id: str, callback: EventCallback) -> None:
        """Register a callback; registering the same object twice is a no-op."""
        callbacks = self._subscribers.setdefault(event_id, [])
        if any(existing is callback for existing in callbacks):
            return
        callbacks.append(callback)
        logger.debug(
            "Callback subscribed",
            event_id=event_id,
            callback=_callback_name(callback),
        )

    def unsubscribe(self, event_id: str, callback: EventCallback) -> None:
        """Remove a callback; absent callbacks are ignored."""
        callbacks = self._subscribers.get(event_id)
        if not callbacks:
            return
        remaining = [existing for existing in callbacks if existing is not callback]
        if len(remaining) == len(callbacks):
            return
        if remaining:
            self._subscribers[event_id] = remaining
        else:
            del self._subscribers[event_id]
        logger.debug(
            "Callback unsubscribed",
            event_id=event_id,
            callback=_callback_name(callback),
        )

    def subscriber_count(self, event_id: str) -> int:
        return len(self._subscribers.get(event_id, ()))

    def publish(self, event_id: str, payload: Optional[Payload] = None) -> None:
        """Invoke every callback for ``event_id`` without waiting for them."""
        callbacks = list(self._subscribers.get(event_id, ()))
        if not callbacks:
            logger.debug("No subscribers for event", event_id=event_id)
            return

        logger.info("Event published", event_id=event_id, subscribers=len(callbacks))
        payload = payload if payload is not None else {}
        for callback in callbacks:
            task = asyncio.create_task(self._safe_call(event_id, callback, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def publish_and_collect(
        self, event_id: str, payload: Optional[Payload] = None
    ) -> List[Any]:
        """Invoke every callback concurrently and return their results.

        Failed callbacks and callbacks returning ``None`` contribute nothing.
        Result order is not tied to registration order.
        """
        callbacks = list(self._subscribers.get(event_id, ()))
        if not callbacks:
            logger.debug("No subscribers for event", event_id=event_id)
            return []

        logger.info(
            "Event published, collecting results",
            event_id=event_id,
            subscribers=len(callbacks),
        )
        payload = payload if payload is not None else {}
        results = await asyncio.gather(
            *(self._safe_call(event_id, callback, payload) for callback in callbacks),
            return_exceptions=True,
        )
        return [
            result
            for result in results
            if result is not None and not isinstance(result, BaseException)
        ]

    async def stop(self) -> None:
        """Wait for fire-and-forget deliveries still in flight."""
        if not self._pending:
            return
        logger.info("Waiting for in-flight event deliveries", count=len(self._pending))
        await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _safe_call(
        self, event_id: str, callback: EventCallback, payload: Payload
    ) -> Any:
        """Call a callback with error isolation."""
        try:
            result = callback(payload)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception:
            logger.exception(
                "Unhandled error in event callback",
                event_id=event_id,
                callback=_callback_name(callback),
            )
            return None
