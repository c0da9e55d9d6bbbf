"""
Event Bus

In-process publish/subscribe router; the only channel between agents.
"""

from .events import (
    EventKind,
    WILDCARD,
    Event,
    IssueCreated,
    IssueUpdated,
    IssueDeleted,
    WorkflowTransition,
    SlaWarning,
    SlaBreach,
    AgentTask,
    AgentResult,
    AgentError,
    PAYLOAD_TYPES,
)
from .event_bus import EventBus, Handler, Unsubscribe

__all__ = [
    "EventKind",
    "WILDCARD",
    "Event",
    "IssueCreated",
    "IssueUpdated",
    "IssueDeleted",
    "WorkflowTransition",
    "SlaWarning",
    "SlaBreach",
    "AgentTask",
    "AgentResult",
    "AgentError",
    "PAYLOAD_TYPES",
    "EventBus",
    "Handler",
    "Unsubscribe",
]
