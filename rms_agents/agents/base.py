"""
Agent Runtime Contract

Every agent implements initialize()/destroy() and is composed with an
injected EventBus. SubscriptionSet is the only state agents have in common:
it owns the unsubscribe callables so destroy() can release them all.
"""

import logging
from typing import List, Optional, Protocol, runtime_checkable

from ..bus import EventBus, Handler, Unsubscribe
from ..bus.event_bus import SubscriptionKey

logger = logging.getLogger(__name__)


@runtime_checkable
class Agent(Protocol):
    name: str

    async def initialize(self) -> None:
        """Register subscriptions (and timers) before returning."""
        ...

    def destroy(self) -> None:
        """Release subscriptions and timers. Idempotent."""
        ...


class SubscriptionSet:
    """
    Subscription bookkeeping for one agent.

    Example:
        subs = SubscriptionSet(bus, owner="Classifier")
        subs.add(EventKind.ISSUE_CREATED, self._on_issue_created)
        ...
        subs.release()
    """

    def __init__(self, bus: EventBus, owner: Optional[str] = None):
        self.bus = bus
        self.owner = owner
        self._unsubscribes: List[Unsubscribe] = []

    def add(self, kind: SubscriptionKey, handler: Handler) -> None:
        self._unsubscribes.append(self.bus.subscribe(kind, handler))

    def release(self) -> int:
        """Unsubscribe everything held. Returns how many were released."""
        released = len(self._unsubscribes)
        unsubscribes, self._unsubscribes = self._unsubscribes, []
        for unsubscribe in unsubscribes:
            unsubscribe()
        if released:
            logger.debug(f"[{self.owner}] released {released} subscriptions")
        return released

    def __len__(self) -> int:
        return len(self._unsubscribes)
