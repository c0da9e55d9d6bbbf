"""
Notification Agent

Fan-in sink that turns domain events into notifications for the UI
transport. Keeps the newest NOTIFICATION_CAPACITY notifications and
republishes each one as agent:result.
"""

import logging
from collections import deque
from itertools import islice
from typing import Deque, List, Optional

from ..bus import (
    EventBus, Event, EventKind,
    IssueCreated, SlaWarning, SlaBreach, AgentError, AgentResult,
)
from ..config import NOTIFICATION_CAPACITY, DEFAULT_NOTIFICATION_LIMIT
from ..models import Notification, NotificationLevel
from .base import SubscriptionSet

logger = logging.getLogger(__name__)


def build_notification(event: Event) -> Optional[Notification]:
    """Map a triggering event to a notification; None for kinds we don't surface."""
    payload = event.payload

    if isinstance(payload, SlaWarning):
        return Notification(
            title="SLA Warning",
            message=f"Issue {payload.issue_id} at {payload.percent:.0%} of its {payload.stage} SLA",
            level=NotificationLevel.WARNING,
        )
    if isinstance(payload, SlaBreach):
        return Notification(
            title="SLA Breach",
            message=f"Issue {payload.issue_id} breached its {payload.stage} SLA",
            level=NotificationLevel.ERROR,
        )
    if isinstance(payload, IssueCreated):
        return Notification(
            title="New Issue",
            message=f"Issue {payload.id}: {payload.title}",
            level=NotificationLevel.INFO,
        )
    if isinstance(payload, AgentError):
        return Notification(
            title="Agent Error",
            message=f"{payload.agent}: {payload.error}",
            level=NotificationLevel.ERROR,
        )
    return None


class NotificationAgent:
    """
    Example:
        notifier = NotificationAgent(bus)
        await notifier.initialize()
        ...
        latest = notifier.get_notifications(limit=10)
    """

    SUBSCRIBED_KINDS = (
        EventKind.SLA_WARNING,
        EventKind.SLA_BREACH,
        EventKind.ISSUE_CREATED,
        EventKind.AGENT_ERROR,
    )

    def __init__(self, bus: EventBus, capacity: int = NOTIFICATION_CAPACITY, name: str = "Notifier"):
        self.name = name
        self.bus = bus
        self._notifications: Deque[Notification] = deque(maxlen=capacity)
        self._subs = SubscriptionSet(bus, owner=name)

    async def initialize(self) -> None:
        logger.info(f"[{self.name}] Initializing...")
        for kind in self.SUBSCRIBED_KINDS:
            self._subs.add(kind, self._on_event)

    def destroy(self) -> None:
        self._subs.release()

    async def _on_event(self, event: Event) -> None:
        notification = build_notification(event)
        if notification is None:
            return

        self._notifications.appendleft(notification)
        logger.debug(f"[{self.name}] {notification.level.value}: {notification.message}")

        self.bus.publish(
            EventKind.AGENT_RESULT,
            AgentResult(agent=self.name, action="notification", notification=notification),
            source=self.name,
            correlation_id=event.correlation_id,
        )

    def get_notifications(self, limit: int = DEFAULT_NOTIFICATION_LIMIT) -> List[Notification]:
        """Newest `limit` notifications, newest first."""
        return list(islice(self._notifications, max(limit, 0)))

    def __len__(self) -> int:
        return len(self._notifications)
