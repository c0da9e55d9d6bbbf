"""
Workflow/SLA Enforcer

Tracks which workflow stage each issue is in and how long it has been there.
A periodic scan compares the residency against the stage's SLA and publishes
workflow:sla_warning or workflow:sla_breach.

Stages without an SLA entry (terminal stages) are never escalated. A scan
re-emits for every issue still past a threshold; there is no
"already notified" marker.
"""

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from ..bus import (
    EventBus, Event, EventKind,
    IssueCreated, IssueDeleted, WorkflowTransition, SlaWarning, SlaBreach,
)
from ..config import INITIAL_STAGE, SLA_SCAN_INTERVAL_SECONDS, DEFAULT_SLA_CONFIGS
from ..models import IssueState, StageSLAConfig
from ..scheduling import Clock, Ticker, ScheduledJob, SystemClock, APSchedulerTicker
from ..utils.time import elapsed_seconds
from .base import SubscriptionSet

logger = logging.getLogger(__name__)


class WorkflowEnforcerAgent:
    """
    Per-issue stage state machine with timer-driven SLA scanning.

    Example:
        enforcer = WorkflowEnforcerAgent(
            bus,
            sla_configs=[StageSLAConfig("new", timedelta(hours=24), 0.75)],
            clock=ManualClock(),
            ticker=ManualTicker(),
        )
        await enforcer.initialize()
    """

    def __init__(
        self,
        bus: EventBus,
        sla_configs: Optional[Iterable[StageSLAConfig]] = None,
        initial_stage: str = INITIAL_STAGE,
        clock: Optional[Clock] = None,
        ticker: Optional[Ticker] = None,
        scan_interval: float = SLA_SCAN_INTERVAL_SECONDS,
        name: str = "WorkflowEnforcer",
    ):
        self.name = name
        self.bus = bus
        self.initial_stage = initial_stage
        self.scan_interval = scan_interval
        self.clock = clock or SystemClock()
        # A scheduler we create is ours to stop on destroy().
        self._owned_ticker = APSchedulerTicker() if ticker is None else None
        self.ticker = ticker or self._owned_ticker

        configs = DEFAULT_SLA_CONFIGS if sla_configs is None else sla_configs
        self._sla_by_stage: Dict[str, StageSLAConfig] = {c.stage: c for c in configs}
        self._issue_states: Dict[str, IssueState] = {}
        self._subs = SubscriptionSet(bus, owner=name)
        self._scan_job: Optional[ScheduledJob] = None

    async def initialize(self) -> None:
        if self._scan_job is not None:
            logger.warning(f"[{self.name}] Already initialized")
            return
        logger.info(f"[{self.name}] Initializing ({len(self._sla_by_stage)} SLA stages)")
        self._subs.add(EventKind.ISSUE_CREATED, self._on_issue_created)
        self._subs.add(EventKind.WORKFLOW_TRANSITION, self._on_transition)
        self._subs.add(EventKind.ISSUE_DELETED, self._on_issue_deleted)
        self._scan_job = self.ticker.schedule(
            self.check_slas, self.scan_interval, name=f"{self.name}-sla-scan"
        )

    def destroy(self) -> None:
        if self._scan_job is not None:
            self._scan_job.cancel()
            self._scan_job = None
        self._subs.release()
        if self._owned_ticker is not None:
            self._owned_ticker.shutdown()

    async def _on_issue_created(self, event: Event) -> None:
        payload = event.payload
        if not isinstance(payload, IssueCreated):
            return
        self._issue_states[payload.id] = IssueState(
            issue_id=payload.id,
            stage=self.initial_stage,
            stage_entered_at=self.clock.now(),
            priority=payload.priority,
        )
        logger.debug(f"[{self.name}] Tracking {payload.id} in stage {self.initial_stage}")

    async def _on_transition(self, event: Event) -> None:
        payload = event.payload
        if not isinstance(payload, WorkflowTransition):
            return
        state = self._issue_states.get(payload.issue_id)
        if state is None:
            logger.debug(f"[{self.name}] Ignoring transition for untracked issue {payload.issue_id}")
            return
        state.stage = payload.to_stage
        state.stage_entered_at = self.clock.now()
        logger.debug(f"[{self.name}] {payload.issue_id} -> {payload.to_stage}")

    async def _on_issue_deleted(self, event: Event) -> None:
        payload = event.payload
        if not isinstance(payload, IssueDeleted):
            return
        if self._issue_states.pop(payload.issue_id, None) is not None:
            logger.debug(f"[{self.name}] Stopped tracking deleted issue {payload.issue_id}")

    def check_slas(self) -> List[Event]:
        """
        Scan every tracked issue against its stage SLA.

        Returns:
            The warning/breach events published by this pass
        """
        now = self.clock.now()
        published = []

        # Handlers may add issues while we publish.
        for issue_id, state in list(self._issue_states.items()):
            config = self._sla_by_stage.get(state.stage)
            if config is None:
                continue

            elapsed = elapsed_seconds(state.stage_entered_at, now)
            percent = elapsed / config.max_duration.total_seconds()

            if percent >= 1.0:
                logger.warning(f"[{self.name}] SLA breach: {issue_id} in {state.stage} for {elapsed:.0f}s")
                published.append(self.bus.publish(
                    EventKind.SLA_BREACH,
                    SlaBreach(issue_id=issue_id, stage=state.stage, elapsed_seconds=elapsed),
                    source=self.name,
                ))
            elif percent >= config.warning_threshold:
                logger.warning(f"[{self.name}] SLA warning: {issue_id} at {percent:.0%} of {state.stage}")
                published.append(self.bus.publish(
                    EventKind.SLA_WARNING,
                    SlaWarning(issue_id=issue_id, stage=state.stage, percent=percent),
                    source=self.name,
                ))

        return published

    def get_issue_state(self, issue_id: str) -> Optional[IssueState]:
        """Snapshot of the tracked state; changing it does not affect the agent."""
        state = self._issue_states.get(issue_id)
        return replace(state) if state is not None else None

    def tracked_issue_ids(self) -> List[str]:
        return list(self._issue_states)
