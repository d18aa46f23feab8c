"""
Event bus for noun change notifications.

Publishes ``todoCreated`` / ``todoUpdated`` / ``todoDeleted`` and verb events
(``todoCompleted``) to subscribers. REST handlers, GraphQL mutations and
GraphQL subscriptions all share one bus per engine.

Delivery is asynchronous relative to ``emit``: listeners are scheduled on the
running event loop, so the emitting request finishes before any listener
runs. Listeners of a single ``emit`` run in registration order.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from nounapi.core.matching import matches_filter

logger = logging.getLogger(__name__)


EventCallback = Callable[[dict[str, Any]], Any]
UnsubscribeFn = Callable[[], None]


@dataclass(eq=False)
class Subscription:
    """A registered listener with an optional equality filter."""

    event: str
    callback: EventCallback
    filter: dict[str, Any] | None = None

    def matches(self, payload: Mapping[str, Any]) -> bool:
        """Every filter key must be present in the payload with an equal value."""
        return matches_filter(payload, self.filter)


@dataclass
class EventBus:
    """
    Typed publish/subscribe with per-subscriber filters.

    Provides:
    - Listener registration with idempotent unsubscribe
    - Filtered, asynchronous dispatch
    - Sync and async listener support
    """

    _listeners: dict[str, list[Subscription]] = field(default_factory=dict)
    _pending: set[asyncio.Future[Any]] = field(default_factory=set)

    def on(
        self,
        event: str,
        callback: EventCallback,
        filter: Mapping[str, Any] | None = None,
    ) -> UnsubscribeFn:
        """
        Register a listener for an event name.

        Args:
            event: Event name (e.g. "todoCreated")
            callback: Called with the payload; may be sync or async
            filter: Exact-equality conditions the payload must satisfy

        Returns:
            Function that removes the listener; calling it again is a no-op
        """
        subscription = Subscription(
            event=event, callback=callback, filter=dict(filter) if filter else None
        )
        self._listeners.setdefault(event, []).append(subscription)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event)
            if listeners and subscription in listeners:
                listeners.remove(subscription)

        return unsubscribe

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, payload: Mapping[str, Any]) -> None:
        """
        Dispatch a payload to every matching listener of ``event``.

        Emitting to an event without listeners is a no-op.
        """
        listeners = self._listeners.get(event)
        if not listeners:
            return

        matching = [s for s in listeners if s.matches(payload)]
        if not matching:
            return

        try:
            loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        for subscription in matching:
            if loop is not None:
                loop.call_soon(self._deliver, subscription, dict(payload))
            else:
                self._deliver(subscription, dict(payload))

    async def drain(self) -> None:
        """Wait until scheduled deliveries (including async listeners) have finished."""
        await asyncio.sleep(0)
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
            await asyncio.sleep(0)

    def clear(self) -> None:
        """Remove every listener."""
        self._listeners.clear()

    # =========================================================================
    # Delivery
    # =========================================================================

    def _deliver(self, subscription: Subscription, payload: dict[str, Any]) -> None:
        try:
            result = subscription.callback(payload)
        except Exception:
            logger.exception(
                "Event listener %s failed for event %s",
                getattr(subscription.callback, "__name__", subscription.callback),
                subscription.event,
            )
            return

        if not inspect.isawaitable(result):
            return

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No loop in this thread: run the coroutine to completion here
            try:
                asyncio.run(_await(result))
            except Exception:
                logger.exception("Async event listener failed for event %s", subscription.event)
            return

        future = asyncio.ensure_future(result)
        self._pending.add(future)
        future.add_done_callback(lambda f: self._finish(subscription, f))

    def _finish(self, subscription: Subscription, future: asyncio.Future[Any]) -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Async event listener %s failed for event %s",
                getattr(subscription.callback, "__name__", subscription.callback),
                subscription.event,
                exc_info=exc,
            )


async def _await(awaitable: Any) -> Any:
    return await awaitable
