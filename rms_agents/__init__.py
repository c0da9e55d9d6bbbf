"""RMS Agents Package

Event bus and autonomous agents for the issue tracker.
"""

__version__ = "0.1.0"

from .bus import EventBus, Event, EventKind, WILDCARD
from .runtime import AgentRuntime, initialize_agents

__all__ = [
    "EventBus",
    "Event",
    "EventKind",
    "WILDCARD",
    "AgentRuntime",
    "initialize_agents",
]
