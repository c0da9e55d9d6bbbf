"""
Classifier Agent

Rule-based categorisation of new issues. Rules are evaluated in order and
the first rule with any keyword found in "title description" wins, so more
specific or urgent rules must come first. Issues matching no rule are left
unclassified.
"""

import asyncio
import sqlite3
import logging
from typing import Iterable, List, Optional

from ..bus import EventBus, Event, EventKind, IssueCreated, IssueUpdated, AgentError
from ..config import DEFAULT_KEYWORD_RULES
from ..exceptions import IssueNotFoundError, StoreError
from ..models import KeywordRule
from ..store import IssueStore
from .base import SubscriptionSet

logger = logging.getLogger(__name__)


def classify(title: str, description: str, rules: Iterable[KeywordRule]) -> Optional[KeywordRule]:
    """
    Return the first rule matching the issue text, or None.

    Args:
        title: Issue title
        description: Issue description (may be empty)
        rules: Ordered rules

    Returns:
        Matching KeywordRule or None
    """
    text = f"{title} {description}".lower()
    for rule in rules:
        if rule.matches(text):
            return rule
    return None


class ClassifierAgent:
    """
    Consumes issue:created, publishes issue:updated with category/priority.

    When constructed with an IssueStore the classification is persisted
    first; store failures are published as agent:error instead.
    """

    def __init__(
        self,
        bus: EventBus,
        rules: Optional[Iterable[KeywordRule]] = None,
        store: Optional[IssueStore] = None,
        name: str = "Classifier",
    ):
        self.name = name
        self.bus = bus
        self.rules: List[KeywordRule] = list(DEFAULT_KEYWORD_RULES if rules is None else rules)
        self.store = store
        self._subs = SubscriptionSet(bus, owner=name)

    async def initialize(self) -> None:
        logger.info(f"[{self.name}] Initializing with {len(self.rules)} rules")
        self._subs.add(EventKind.ISSUE_CREATED, self._on_issue_created)

    def destroy(self) -> None:
        self._subs.release()

    async def _on_issue_created(self, event: Event) -> None:
        payload = event.payload
        if not isinstance(payload, IssueCreated):
            return

        rule = classify(payload.title, payload.description, self.rules)
        if rule is None:
            logger.debug(f"[{self.name}] No rule matched {payload.id}")
            return

        logger.info(f"[{self.name}] Categorized {payload.id}: {rule.category} ({rule.priority})")

        if self.store is not None:
            try:
                await asyncio.to_thread(self._persist, payload.id, rule)
            except (StoreError, sqlite3.Error) as e:
                logger.error(f"[{self.name}] Failed to persist classification for {payload.id}: {e}")
                self.bus.publish(
                    EventKind.AGENT_ERROR,
                    AgentError(
                        agent=self.name,
                        error=str(e),
                        context={"issue_id": payload.id, "operation": "classify"},
                    ),
                    source=self.name,
                    correlation_id=event.correlation_id,
                )
                return

        self.bus.publish(
            EventKind.ISSUE_UPDATED,
            IssueUpdated(id=payload.id, category=rule.category, priority=rule.priority),
            source=self.name,
            correlation_id=event.correlation_id,
        )

    def _persist(self, issue_id: str, rule: KeywordRule) -> None:
        current = self.store.find_by_id(issue_id)
        if current is None:
            raise IssueNotFoundError(issue_id)
        self.store.update(
            issue_id,
            {"category": rule.category, "priority": rule.priority},
            expected_version=current.version,
        )
