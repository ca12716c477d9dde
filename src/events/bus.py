"""Event bus for in-process pub/sub.

The event bus decouples event producers from consumers.
Publishers emit events, subscribers receive events they're interested in.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from src.events.base import EventKind, MeetingEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None] | Callable[[Any], Awaitable[None]]


class EventBus:
    """Simple event bus for in-process pub/sub.

    Features:
    - Subscriptions keyed by event kind
    - Handlers invoked in registration order
    - Coroutine handlers run as background tasks, never awaited by publish
    - Error isolation (one handler failure doesn't affect others)

    The bus holds only the registration table. It neither persists nor
    retries events; durability of a reaction is the subscriber's job.
    """

    def __init__(self) -> None:
        """Initialize event bus with an empty registration table."""
        self._subscribers: dict[EventKind, list[EventHandler]] = {}
        self._pending: set[asyncio.Task[None]] = set()

    def subscribe(self, kind: EventKind, handler: EventHandler) -> None:
        """Subscribe a handler to an event kind.

        Args:
            kind: The event kind to subscribe to
            handler: Function to call when an event of that kind is published
        """
        self._subscribers.setdefault(kind, []).append(handler)
        logger.debug(f"Subscribed handler to {kind.value}")

    def unsubscribe(self, kind: EventKind, handler: EventHandler) -> None:
        """Unsubscribe a handler from an event kind.

        Args:
            kind: The event kind to unsubscribe from
            handler: The handler to remove
        """
        if kind in self._subscribers:
            try:
                self._subscribers[kind].remove(handler)
                logger.debug(f"Unsubscribed handler from {kind.value}")
            except ValueError:
                pass  # Handler wasn't subscribed

    async def publish(self, event: MeetingEvent) -> None:
        """Publish an event to all subscribers.

        Returns once every handler has been invoked. Work a coroutine
        handler does after its first suspension point continues in the
        background; use ``drain()`` to wait for it.

        Args:
            event: The event to publish
        """
        handlers = list(self._subscribers.get(event.kind, []))
        logger.debug(f"Publishing {event.kind.value} to {len(handlers)} handler(s)")

        for handler in handlers:
            try:
                result = handler(event)
            except Exception as e:
                logger.error(f"Handler error for {event.kind.value}: {e}", exc_info=e)
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._make_done_callback(event))

    def _make_done_callback(
        self, event: MeetingEvent
    ) -> Callable[[asyncio.Task[None]], None]:
        def _done(task: asyncio.Task[None]) -> None:
            self._pending.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                logger.error(
                    f"Async handler error for {event.kind.value}: {exc}", exc_info=exc
                )

        return _done

    async def drain(self) -> None:
        """Wait for all in-flight handler tasks to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def subscriber_count(self, kind: EventKind) -> int:
        """Get number of subscribers for an event kind."""
        return len(self._subscribers.get(kind, []))
