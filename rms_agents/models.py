"""
Agent Data Models

Derived-state types owned by individual agents, plus the static
configuration tables they are constructed with.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Tuple, Dict, Any
import uuid

from .utils.time import utcnow


class NotificationLevel(Enum):
    """Notification severity, derived from the triggering event kind."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    """A user-facing notification handed to the transport layer."""
    title: str
    message: str
    level: NotificationLevel = NotificationLevel.INFO
    id: str = field(default_factory=lambda: f"notif-{uuid.uuid4().hex[:12]}")
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "level": self.level.value,
            "title": self.title,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Pattern:
    """
    A behavioural pattern mined from bus traffic.

    Attributes:
        id: Stable key, ``pattern-<event kind>``
        kind: Pattern family (only "frequency" today)
        description: Human-readable summary
        confidence: Score in [0, 1]; only ever increases
        occurrences: Count seen in the most recent analysis window
    """
    id: str
    description: str
    confidence: float
    occurrences: int
    kind: str = "frequency"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "description": self.description,
            "confidence": round(self.confidence, 4),
            "occurrences": self.occurrences,
        }


@dataclass
class IssueState:
    """Workflow enforcer's private mirror of where an issue sits."""
    issue_id: str
    stage: str
    stage_entered_at: datetime
    priority: str = "medium"


@dataclass(frozen=True)
class StageSLAConfig:
    """Maximum residency for a workflow stage and the warning fraction."""
    stage: str
    max_duration: timedelta
    warning_threshold: float = 0.75

    def __post_init__(self):
        if self.max_duration.total_seconds() <= 0:
            raise ValueError(f"max_duration must be positive for stage {self.stage!r}")
        if not 0.0 <= self.warning_threshold <= 1.0:
            raise ValueError(
                f"warning_threshold must be within [0, 1] for stage {self.stage!r}"
            )


@dataclass(frozen=True)
class KeywordRule:
    """Ordered classification rule: any keyword substring match wins."""
    keywords: Tuple[str, ...]
    category: str
    priority: str

    def matches(self, text: str) -> bool:
        return any(kw in text for kw in self.keywords)
