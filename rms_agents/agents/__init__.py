"""
Agents

Independent agents composed with an injected EventBus. Each implements
initialize()/destroy() and owns its derived state exclusively.
"""

from .base import Agent, SubscriptionSet
from .classifier import ClassifierAgent, classify
from .notifier import NotificationAgent
from .orchestrator import OrchestratorAgent
from .pattern_miner import PatternMinerAgent
from .workflow_enforcer import WorkflowEnforcerAgent

__all__ = [
    "Agent",
    "SubscriptionSet",
    "ClassifierAgent",
    "classify",
    "NotificationAgent",
    "OrchestratorAgent",
    "PatternMinerAgent",
    "WorkflowEnforcerAgent",
]
