"""
Event Bus - In-process publish/subscribe

Delivery model is best-effort fire-and-forget:
- publish() calls handlers synchronously in registration order, kind
  handlers first, then wildcard handlers
- coroutine handlers are scheduled as tasks and not awaited by publish()
- handler failures are logged and never reach the publisher

flush() awaits all in-flight handler tasks; tests and shutdown use it.
"""

import asyncio
import inspect
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from ..utils.time import utcnow
from .events import Event, EventKind, WILDCARD, PAYLOAD_TYPES

logger = logging.getLogger(__name__)

Handler = Callable[[Event], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]
SubscriptionKey = Union[EventKind, str]


class _Subscription:
    __slots__ = ("key", "handler")

    def __init__(self, key: SubscriptionKey, handler: Handler):
        self.key = key
        self.handler = handler

    @property
    def name(self) -> str:
        return getattr(self.handler, "__qualname__", repr(self.handler))


def _normalize_key(kind: SubscriptionKey) -> SubscriptionKey:
    if kind == WILDCARD:
        return WILDCARD
    if isinstance(kind, EventKind):
        return kind
    return EventKind(kind)


class EventBus:
    """
    Routes events from publishers to subscribers.

    Example:
        bus = EventBus()
        unsubscribe = bus.subscribe(EventKind.ISSUE_CREATED, on_created)

        bus.publish(
            EventKind.ISSUE_CREATED,
            IssueCreated(id="ISS-1", title="App crash on checkout"),
            source="api",
        )
        await bus.flush()

        unsubscribe()
    """

    def __init__(self):
        self._subscribers: Dict[SubscriptionKey, List[_Subscription]] = {}
        self._pending: Set[asyncio.Future] = set()

    def subscribe(self, kind: SubscriptionKey, handler: Handler) -> Unsubscribe:
        """
        Register a handler for an event kind or the wildcard.

        Args:
            kind: EventKind, its string value, or WILDCARD
            handler: Callable or coroutine function taking an Event

        Returns:
            Idempotent callable that removes this registration
        """
        key = _normalize_key(kind)
        subscription = _Subscription(key, handler)
        self._subscribers.setdefault(key, []).append(subscription)

        def unsubscribe() -> None:
            handlers = self._subscribers.get(key, [])
            for i, existing in enumerate(handlers):
                if existing is subscription:
                    del handlers[i]
                    break

        return unsubscribe

    def publish(
        self,
        kind: Union[EventKind, str],
        payload: Any,
        source: str,
        correlation_id: Optional[str] = None,
    ) -> Event:
        """
        Build an Event and dispatch it.

        Raises:
            ValueError: kind is the wildcard or unknown
            TypeError: payload type does not belong to kind
        """
        if kind == WILDCARD:
            raise ValueError("Cannot publish the wildcard kind")
        kind = kind if isinstance(kind, EventKind) else EventKind(kind)

        expected = PAYLOAD_TYPES[kind]
        if not isinstance(payload, expected):
            raise TypeError(
                f"{kind.value} expects {expected.__name__}, got {type(payload).__name__}"
            )

        event = Event(
            kind=kind,
            payload=payload,
            source=source,
            timestamp=utcnow(),
            correlation_id=correlation_id,
        )

        # Snapshot: subscriptions changed by handlers apply to later passes.
        selected = list(self._subscribers.get(kind, ())) + list(self._subscribers.get(WILDCARD, ()))
        for subscription in selected:
            self._invoke(subscription, event)

        return event

    def _invoke(self, subscription: _Subscription, event: Event) -> None:
        try:
            result = subscription.handler(event)
        except Exception:
            logger.exception(
                f"Handler {subscription.name} failed for {event.kind.value} from {event.source}"
            )
            return

        if inspect.isawaitable(result):
            self._schedule(result, subscription, event)

    def _schedule(self, awaitable: Awaitable, subscription: _Subscription, event: Event) -> None:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._run_inline(awaitable, subscription, event)
            return

        task = asyncio.ensure_future(awaitable)
        self._pending.add(task)
        task.add_done_callback(partial(self._on_done, subscription, event))

    def _run_inline(self, awaitable: Awaitable, subscription: _Subscription, event: Event) -> None:
        """Drive a coroutine handler to completion when no loop is running."""
        async def drive():
            try:
                await awaitable
            finally:
                await self.flush()

        try:
            asyncio.run(drive())
        except Exception:
            logger.exception(
                f"Handler {subscription.name} failed for {event.kind.value} from {event.source}"
            )

    def _on_done(self, subscription: _Subscription, event: Event, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.debug(f"Handler {subscription.name} cancelled for {event.kind.value}")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Handler {subscription.name} failed for {event.kind.value} from {event.source}: {exc}",
                exc_info=exc,
            )

    async def flush(self) -> None:
        """Wait until no handler task is in flight, including ones spawned while waiting."""
        while True:
            pending = [t for t in self._pending if not t.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
        # Let done-callbacks run so pending_count settles.
        await asyncio.sleep(0)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def subscriber_count(self, kind: SubscriptionKey) -> int:
        return len(self._subscribers.get(_normalize_key(kind), ()))
