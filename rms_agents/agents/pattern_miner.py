"""
Pattern-Mining Agent

Keeps a bounded, newest-first history of bus traffic and looks for event
kinds that dominate the most recent window.

Algorithm (runs on every recorded event):
1. Prepend the event; the deque drops the oldest past capacity
2. Count kinds over the newest `window` events
3. Each kind with count >= threshold upserts pattern-<kind>:
   new -> confidence 0.6; existing -> confidence + 0.05, capped at 0.95

Confidence only ever grows. Events the miner publishes itself are not
recorded, so its own announcements cannot feed back into the counts.
"""

import logging
from dataclasses import replace
from collections import Counter, deque
from itertools import islice
from typing import Deque, Dict, List

from ..bus import EventBus, Event, EventKind, WILDCARD, AgentResult
from ..config import HISTORY_CAPACITY, ANALYSIS_WINDOW, FREQUENCY_THRESHOLD
from ..models import Pattern
from .base import SubscriptionSet

logger = logging.getLogger(__name__)

INITIAL_CONFIDENCE = 0.6
CONFIDENCE_STEP = 0.05
MAX_CONFIDENCE = 0.95


class PatternMinerAgent:
    """Sliding-window frequency analysis over all bus traffic."""

    def __init__(
        self,
        bus: EventBus,
        capacity: int = HISTORY_CAPACITY,
        window: int = ANALYSIS_WINDOW,
        threshold: int = FREQUENCY_THRESHOLD,
        name: str = "PatternMiner",
    ):
        self.name = name
        self.bus = bus
        self.window = window
        self.threshold = threshold
        self._history: Deque[Event] = deque(maxlen=capacity)
        self._patterns: Dict[str, Pattern] = {}
        self._subs = SubscriptionSet(bus, owner=name)

    async def initialize(self) -> None:
        logger.info(f"[{self.name}] Initializing (capacity={self._history.maxlen}, window={self.window})")
        self._subs.add(WILDCARD, self._record_event)

    def destroy(self) -> None:
        self._subs.release()

    async def _record_event(self, event: Event) -> None:
        if event.source == self.name:
            return
        self._history.appendleft(event)
        self._detect_patterns()

    def _detect_patterns(self) -> None:
        counts = Counter(e.kind for e in islice(self._history, self.window))

        for kind, count in counts.items():
            if count < self.threshold:
                continue

            pattern_id = f"pattern-{kind.value}"
            existing = self._patterns.get(pattern_id)
            if existing is not None:
                existing.occurrences = count
                existing.confidence = min(MAX_CONFIDENCE, existing.confidence + CONFIDENCE_STEP)
                continue

            pattern = Pattern(
                id=pattern_id,
                description=f"High frequency: {kind.value}",
                confidence=INITIAL_CONFIDENCE,
                occurrences=count,
            )
            self._patterns[pattern_id] = pattern
            logger.info(f"[{self.name}] New pattern {pattern_id} ({count} in last {self.window} events)")
            self.bus.publish(
                EventKind.AGENT_RESULT,
                AgentResult(
                    agent=self.name,
                    action="pattern_detected",
                    pattern=replace(pattern),
                ),
                source=self.name,
            )

    def get_patterns(self, min_confidence: float = 0.0) -> List[Pattern]:
        """Patterns with confidence >= min_confidence, most confident first."""
        matches = [replace(p) for p in self._patterns.values() if p.confidence >= min_confidence]
        return sorted(matches, key=lambda p: p.confidence, reverse=True)

    def get_history(self, limit: int = 50) -> List[Event]:
        """Newest-first slice of the recorded history."""
        return list(islice(self._history, limit))

    @property
    def history_size(self) -> int:
        return len(self._history)
