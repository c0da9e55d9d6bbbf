"""
Tests for the Orchestrator agent
"""

import pytest

from rms_agents.agents import OrchestratorAgent
from rms_agents.bus import EventBus, EventKind, IssueCreated, SlaBreach, WILDCARD


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def tasks(bus):
    events = []
    bus.subscribe(EventKind.AGENT_TASK, events.append)
    return events


@pytest.fixture
def orchestrator(bus):
    return OrchestratorAgent(bus)


class TestEscalation:
    @pytest.mark.asyncio
    async def test_breach_escalates_with_correlation(self, bus, orchestrator, tasks):
        await orchestrator.initialize()

        breach = SlaBreach(issue_id="ISS-1", stage="new", elapsed_seconds=90000.0)
        bus.publish(EventKind.SLA_BREACH, breach, source="WorkflowEnforcer", correlation_id="c-7")
        await bus.flush()

        assert len(tasks) == 1
        task = tasks[0]
        assert task.source == "Orchestrator"
        assert task.correlation_id == "c-7"
        assert task.payload.action == "escalate"
        assert task.payload.priority == "critical"
        assert task.payload.issue == breach

    @pytest.mark.asyncio
    async def test_escalations_counted(self, bus, orchestrator):
        await orchestrator.initialize()

        for i in range(3):
            bus.publish(
                EventKind.SLA_BREACH,
                SlaBreach(issue_id=f"ISS-{i}", stage="new", elapsed_seconds=1.0),
                source="WorkflowEnforcer",
            )
        await bus.flush()

        assert orchestrator.get_status()["escalations"] == 3


class TestCoordinateTask:
    @pytest.mark.asyncio
    async def test_coordinate_task_starts_new_chain(self, orchestrator, tasks):
        await orchestrator.initialize()

        correlation_id = orchestrator.coordinate_task("reindex", data={"project": "rms"}, priority="high")

        assert correlation_id.startswith("task-")
        assert len(tasks) == 1
        task = tasks[0]
        assert task.correlation_id == correlation_id
        assert task.payload.action == "reindex"
        assert task.payload.priority == "high"
        assert dict(task.payload.data) == {"project": "rms"}
        assert task.payload.coordinator == "Orchestrator"

    def test_correlation_ids_are_fresh(self, orchestrator):
        first = orchestrator.coordinate_task("a")
        second = orchestrator.coordinate_task("a")
        assert first != second

    def test_coordinate_task_without_initialize(self, bus, orchestrator, tasks):
        orchestrator.coordinate_task("sync")
        assert dict(tasks[0].payload.data) == {}


class TestObservation:
    @pytest.mark.asyncio
    async def test_wildcard_observation(self, bus, orchestrator):
        await orchestrator.initialize()

        bus.publish(EventKind.ISSUE_CREATED, IssueCreated(id="ISS-1", title="x"), source="api")
        bus.publish(EventKind.ISSUE_CREATED, IssueCreated(id="ISS-2", title="y"), source="api")
        await bus.flush()

        status = orchestrator.get_status()
        assert status["events_observed"]["issue:created"] == 2
        assert status["total_observed"] == 2
        assert status["subscriptions"] == 2

    @pytest.mark.asyncio
    async def test_destroy_twice(self, bus, orchestrator):
        await orchestrator.initialize()
        orchestrator.destroy()
        orchestrator.destroy()

        assert bus.subscriber_count(WILDCARD) == 0
        assert bus.subscriber_count(EventKind.SLA_BREACH) == 0
