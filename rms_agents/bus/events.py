"""
Event Types

Closed set of domain event kinds and the payload dataclass each one carries.
Payloads are frozen so every subscriber sees the same immutable copy.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Optional, Dict, Any, Mapping, Union

from ..models import Notification, Pattern


class EventKind(Enum):
    """Domain event names carried on the bus."""
    ISSUE_CREATED = "issue:created"
    ISSUE_UPDATED = "issue:updated"
    ISSUE_DELETED = "issue:deleted"
    WORKFLOW_TRANSITION = "workflow:transition"
    SLA_WARNING = "workflow:sla_warning"
    SLA_BREACH = "workflow:sla_breach"
    AGENT_TASK = "agent:task"
    AGENT_RESULT = "agent:result"
    AGENT_ERROR = "agent:error"


# Subscription-only kind: receives every published event.
WILDCARD = "*"


def _freeze(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    """Read-only copy, so one subscriber cannot rewrite what the others see."""
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class IssueCreated:
    id: str
    title: str
    description: str = ""
    priority: str = "medium"


@dataclass(frozen=True)
class IssueUpdated:
    id: str
    category: str
    priority: str


@dataclass(frozen=True)
class IssueDeleted:
    issue_id: str


@dataclass(frozen=True)
class WorkflowTransition:
    issue_id: str
    to_stage: str
    from_stage: Optional[str] = None


@dataclass(frozen=True)
class SlaWarning:
    issue_id: str
    stage: str
    percent: float


@dataclass(frozen=True)
class SlaBreach:
    issue_id: str
    stage: str
    elapsed_seconds: float


@dataclass(frozen=True)
class AgentTask:
    action: str
    priority: str = "normal"
    issue: Optional[SlaBreach] = None
    data: Mapping[str, Any] = field(default_factory=dict)
    coordinator: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "data", _freeze(self.data))


@dataclass(frozen=True)
class AgentResult:
    agent: str
    action: str
    notification: Optional[Notification] = None
    pattern: Optional[Pattern] = None


@dataclass(frozen=True)
class AgentError:
    agent: str
    error: str
    context: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "context", _freeze(self.context))


Payload = Union[
    IssueCreated, IssueUpdated, IssueDeleted, WorkflowTransition,
    SlaWarning, SlaBreach, AgentTask, AgentResult, AgentError,
]

PAYLOAD_TYPES: Dict[EventKind, type] = {
    EventKind.ISSUE_CREATED: IssueCreated,
    EventKind.ISSUE_UPDATED: IssueUpdated,
    EventKind.ISSUE_DELETED: IssueDeleted,
    EventKind.WORKFLOW_TRANSITION: WorkflowTransition,
    EventKind.SLA_WARNING: SlaWarning,
    EventKind.SLA_BREACH: SlaBreach,
    EventKind.AGENT_TASK: AgentTask,
    EventKind.AGENT_RESULT: AgentResult,
    EventKind.AGENT_ERROR: AgentError,
}


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


@dataclass(frozen=True)
class Event:
    """
    A published domain event.

    Attributes:
        kind: Event kind (never the wildcard)
        payload: Kind-specific frozen payload
        source: Name of the publishing agent or external producer
        timestamp: Publish time (UTC)
        correlation_id: Token threading causally related events
    """
    kind: EventKind
    payload: Payload
    source: str
    timestamp: datetime
    correlation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "kind": self.kind.value,
            "payload": _jsonable(self.payload),
            "source": self.source,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
        }
