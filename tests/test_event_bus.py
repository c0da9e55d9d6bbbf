"""
Tests for rms_agents.bus: publish/subscribe routing

Coverage targets:
- Fan-out order: kind handlers, then wildcard handlers, registration order
- Exactly-once delivery per publish
- Unsubscribe semantics (idempotent, effective mid-pass for later publishes)
- Fire-and-forget coroutine handlers, failure isolation, flush()
- Closed payload typing
"""

import dataclasses
import logging

import pytest

from rms_agents.bus import (
    EventBus, Event, EventKind, WILDCARD,
    IssueCreated, IssueUpdated, SlaBreach, AgentTask, AgentError,
)


def _created(issue_id="ISS-1", title="App crash on checkout"):
    return IssueCreated(id=issue_id, title=title)


@pytest.fixture
def bus():
    return EventBus()


class TestFanOut:
    def test_kind_handlers_then_wildcard_in_registration_order(self, bus):
        calls = []
        bus.subscribe(WILDCARD, lambda e: calls.append("wild-1"))
        bus.subscribe(EventKind.ISSUE_CREATED, lambda e: calls.append("kind-1"))
        bus.subscribe(EventKind.ISSUE_CREATED, lambda e: calls.append("kind-2"))
        bus.subscribe(WILDCARD, lambda e: calls.append("wild-2"))

        bus.publish(EventKind.ISSUE_CREATED, _created(), source="api")

        assert calls == ["kind-1", "kind-2", "wild-1", "wild-2"]

    def test_each_handler_called_exactly_once(self, bus):
        received = {"kind": [], "wild": []}
        bus.subscribe(EventKind.ISSUE_CREATED, received["kind"].append)
        bus.subscribe(WILDCARD, received["wild"].append)

        event = bus.publish(EventKind.ISSUE_CREATED, _created(), source="api")

        assert received["kind"] == [event]
        assert received["wild"] == [event]

    def test_other_kinds_not_delivered(self, bus):
        calls = []
        bus.subscribe(EventKind.ISSUE_UPDATED, calls.append)

        bus.publish(EventKind.ISSUE_CREATED, _created(), source="api")

        assert calls == []

    def test_same_handler_registered_twice_runs_twice(self, bus):
        calls = []
        handler = calls.append
        bus.subscribe(EventKind.ISSUE_CREATED, handler)
        bus.subscribe(EventKind.ISSUE_CREATED, handler)

        bus.publish(EventKind.ISSUE_CREATED, _created(), source="api")

        assert len(calls) == 2

    def test_string_kind_accepted(self, bus):
        calls = []
        bus.subscribe("issue:created", calls.append)

        event = bus.publish("issue:created", _created(), source="cli")

        assert event.kind is EventKind.ISSUE_CREATED
        assert calls == [event]


class TestEvent:
    def test_event_fields(self, bus):
        event = bus.publish(EventKind.ISSUE_CREATED, _created(), source="api", correlation_id="c-1")

        assert event.source == "api"
        assert event.correlation_id == "c-1"
        assert event.timestamp.tzinfo is not None

    def test_correlation_id_optional(self, bus):
        event = bus.publish(EventKind.ISSUE_CREATED, _created(), source="api")
        assert event.correlation_id is None

    def test_event_is_immutable(self, bus):
        event = bus.publish(EventKind.ISSUE_CREATED, _created(), source="api")

        with pytest.raises(dataclasses.FrozenInstanceError):
            event.source = "someone-else"
        with pytest.raises(dataclasses.FrozenInstanceError):
            event.payload.title = "changed"

    def test_to_dict_nested_payload(self, bus):
        breach = SlaBreach(issue_id="ISS-1", stage="new", elapsed_seconds=90000.0)
        event = bus.publish(
            EventKind.AGENT_TASK,
            AgentTask(action="escalate", priority="critical", issue=breach),
            source="Orchestrator",
        )

        data = event.to_dict()

        assert data["kind"] == "agent:task"
        assert data["payload"]["issue"]["issue_id"] == "ISS-1"
        assert data["payload"]["priority"] == "critical"
        assert data["payload"]["data"] == {}

    def test_task_data_is_read_only(self, bus):
        seen = []

        def tamper(event):
            event.payload.data.update(hijacked=True)

        bus.subscribe(EventKind.AGENT_TASK, tamper)
        bus.subscribe(WILDCARD, lambda event: seen.append(dict(event.payload.data)))

        source = {"scope": "all"}
        event = bus.publish(EventKind.AGENT_TASK, AgentTask(action="reindex", data=source), source="Orchestrator")

        with pytest.raises(TypeError):
            event.payload.data["scope"] = "none"
        assert seen == [{"scope": "all"}]

        source["scope"] = "changed"
        assert event.payload.data["scope"] == "all"

    def test_error_context_is_read_only(self, bus):
        event = bus.publish(
            EventKind.AGENT_ERROR,
            AgentError(agent="Classifier", error="boom", context={"issue_id": "ISS-1"}),
            source="Classifier",
        )

        with pytest.raises(TypeError):
            event.payload.context["issue_id"] = "ISS-2"
        assert event.to_dict()["payload"]["context"] == {"issue_id": "ISS-1"}


class TestPayloadValidation:
    def test_wrong_payload_type_rejected(self, bus):
        with pytest.raises(TypeError):
            bus.publish(EventKind.ISSUE_UPDATED, _created(), source="api")

    def test_wildcard_cannot_be_published(self, bus):
        with pytest.raises(ValueError):
            bus.publish(WILDCARD, _created(), source="api")

    def test_unknown_kind_rejected(self, bus):
        with pytest.raises(ValueError):
            bus.publish("issue:exploded", _created(), source="api")


class TestUnsubscribe:
    def test_unsubscribe_stops_delivery(self, bus):
        calls = []
        unsubscribe = bus.subscribe(EventKind.ISSUE_CREATED, calls.append)

        bus.publish(EventKind.ISSUE_CREATED, _created("ISS-1"), source="api")
        unsubscribe()
        bus.publish(EventKind.ISSUE_CREATED, _created("ISS-2"), source="api")

        assert [e.payload.id for e in calls] == ["ISS-1"]

    def test_unsubscribe_is_idempotent(self, bus):
        unsubscribe = bus.subscribe(EventKind.ISSUE_CREATED, lambda e: None)
        unsubscribe()
        unsubscribe()
        assert bus.subscriber_count(EventKind.ISSUE_CREATED) == 0

    def test_unsubscribe_only_removes_own_registration(self, bus):
        calls = []
        handler = calls.append
        first = bus.subscribe(EventKind.ISSUE_CREATED, handler)
        bus.subscribe(EventKind.ISSUE_CREATED, handler)

        first()
        first()
        bus.publish(EventKind.ISSUE_CREATED, _created(), source="api")

        assert len(calls) == 1

    def test_unsubscribe_inside_handler_applies_to_later_publishes(self, bus):
        calls = []
        unsubscribes = {}

        def first(event):
            calls.append(("first", event.payload.id))
            unsubscribes["second"]()
            if event.payload.id == "ISS-1":
                # Same tick, later publish: second must not see it.
                bus.publish(EventKind.ISSUE_CREATED, _created("ISS-2"), source="api")

        def second(event):
            calls.append(("second", event.payload.id))

        bus.subscribe(EventKind.ISSUE_CREATED, first)
        unsubscribes["second"] = bus.subscribe(EventKind.ISSUE_CREATED, second)

        bus.publish(EventKind.ISSUE_CREATED, _created("ISS-1"), source="api")

        # second was already selected for the ISS-1 pass, so it still runs once.
        assert ("second", "ISS-1") in calls
        assert ("second", "ISS-2") not in calls
        assert ("first", "ISS-2") in calls

    def test_subscribe_inside_handler_not_in_current_pass(self, bus):
        late_calls = []

        def registrar(event):
            bus.subscribe(EventKind.ISSUE_CREATED, late_calls.append)

        bus.subscribe(EventKind.ISSUE_CREATED, registrar)
        bus.publish(EventKind.ISSUE_CREATED, _created("ISS-1"), source="api")

        assert late_calls == []


class TestFailureIsolation:
    def test_sync_handler_failure_is_logged_not_raised(self, bus, caplog):
        calls = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(EventKind.ISSUE_CREATED, broken)
        bus.subscribe(EventKind.ISSUE_CREATED, calls.append)

        with caplog.at_level(logging.ERROR):
            event = bus.publish(EventKind.ISSUE_CREATED, _created(), source="api")

        assert calls == [event]
        assert "boom" in caplog.text or "failed" in caplog.text

    @pytest.mark.asyncio
    async def test_async_handler_failure_is_logged_not_raised(self, bus, caplog):
        calls = []

        async def broken(event):
            raise RuntimeError("async boom")

        async def healthy(event):
            calls.append(event)

        bus.subscribe(EventKind.ISSUE_CREATED, broken)
        bus.subscribe(EventKind.ISSUE_CREATED, healthy)

        with caplog.at_level(logging.ERROR):
            bus.publish(EventKind.ISSUE_CREATED, _created(), source="api")
            await bus.flush()

        assert len(calls) == 1
        assert "async boom" in caplog.text


class TestAsyncDispatch:
    @pytest.mark.asyncio
    async def test_publish_does_not_wait_for_coroutine_handlers(self, bus):
        calls = []

        async def handler(event):
            calls.append(event)

        bus.subscribe(EventKind.ISSUE_CREATED, handler)
        bus.publish(EventKind.ISSUE_CREATED, _created(), source="api")

        assert calls == []
        assert bus.pending_count == 1

        await bus.flush()

        assert len(calls) == 1
        assert bus.pending_count == 0

    @pytest.mark.asyncio
    async def test_coroutine_handlers_start_in_registration_order(self, bus):
        calls = []

        async def first(event):
            calls.append("first")

        async def second(event):
            calls.append("second")

        bus.subscribe(EventKind.ISSUE_CREATED, first)
        bus.subscribe(WILDCARD, second)
        bus.publish(EventKind.ISSUE_CREATED, _created(), source="api")
        await bus.flush()

        assert calls == ["first", "second"]

    @pytest.mark.asyncio
    async def test_flush_waits_for_chained_handlers(self, bus):
        updates = []

        async def on_created(event):
            bus.publish(
                EventKind.ISSUE_UPDATED,
                IssueUpdated(id=event.payload.id, category="bug", priority="high"),
                source="test",
                correlation_id=event.correlation_id,
            )

        async def on_updated(event):
            updates.append(event)

        bus.subscribe(EventKind.ISSUE_CREATED, on_created)
        bus.subscribe(EventKind.ISSUE_UPDATED, on_updated)

        bus.publish(EventKind.ISSUE_CREATED, _created(), source="api", correlation_id="c-9")
        await bus.flush()

        assert len(updates) == 1
        assert updates[0].correlation_id == "c-9"

    def test_coroutine_handler_runs_inline_without_loop(self, bus):
        calls = []

        async def handler(event):
            calls.append(event.payload.id)

        bus.subscribe(EventKind.ISSUE_CREATED, handler)
        bus.publish(EventKind.ISSUE_CREATED, _created("ISS-7"), source="api")

        assert calls == ["ISS-7"]

    @pytest.mark.asyncio
    async def test_flush_with_nothing_pending(self, bus):
        await bus.flush()
        assert bus.pending_count == 0
