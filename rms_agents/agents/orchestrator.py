"""
Orchestrator Agent

Observes all bus traffic for audit logging, escalates SLA breaches and is the
entry point for externally initiated, correlated task fan-out.
"""

import logging
import uuid
from collections import Counter
from typing import Any, Dict, Optional

from ..bus import EventBus, Event, EventKind, WILDCARD, AgentTask, SlaBreach
from .base import SubscriptionSet

logger = logging.getLogger(__name__)


class OrchestratorAgent:
    """The only agent that starts new causal chains; the others propagate them."""

    def __init__(self, bus: EventBus, name: str = "Orchestrator"):
        self.name = name
        self.bus = bus
        self._observed: Counter = Counter()
        self._escalations = 0
        self._subs = SubscriptionSet(bus, owner=name)

    async def initialize(self) -> None:
        logger.info(f"[{self.name}] Initializing orchestrator...")
        self._subs.add(WILDCARD, self._observe)
        self._subs.add(EventKind.SLA_BREACH, self._on_sla_breach)

    def destroy(self) -> None:
        self._subs.release()

    def _observe(self, event: Event) -> None:
        self._observed[event.kind.value] += 1
        logger.debug(
            f"[{self.name}] Event: {event.kind.value} from {event.source}"
            + (f" (correlation={event.correlation_id})" if event.correlation_id else "")
        )

    async def _on_sla_breach(self, event: Event) -> None:
        payload = event.payload
        if not isinstance(payload, SlaBreach):
            return
        logger.warning(f"[{self.name}] SLA BREACH: escalating {payload.issue_id} ({payload.stage})")
        self._escalations += 1
        self.bus.publish(
            EventKind.AGENT_TASK,
            AgentTask(action="escalate", priority="critical", issue=payload),
            source=self.name,
            correlation_id=event.correlation_id,
        )

    def coordinate_task(
        self,
        action: str,
        data: Optional[Dict[str, Any]] = None,
        priority: str = "normal",
    ) -> str:
        """
        Start a new correlated task chain.

        Args:
            action: Task name for downstream workers
            data: Task parameters
            priority: Task priority label

        Returns:
            The correlation id threading the chain
        """
        correlation_id = f"task-{uuid.uuid4().hex[:12]}"
        self.bus.publish(
            EventKind.AGENT_TASK,
            AgentTask(action=action, priority=priority, data=data or {}, coordinator=self.name),
            source=self.name,
            correlation_id=correlation_id,
        )
        logger.info(f"[{self.name}] Coordinating {action} ({correlation_id})")
        return correlation_id

    def get_status(self) -> Dict[str, Any]:
        return {
            "agent": self.name,
            "subscriptions": len(self._subs),
            "events_observed": dict(self._observed),
            "total_observed": sum(self._observed.values()),
            "escalations": self._escalations,
        }
