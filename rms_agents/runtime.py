"""
Agent Runtime

Builds the five agents around one EventBus, initializes them concurrently and
tears them down together.
"""

import asyncio
import logging
from typing import List, Optional

from .agents import (
    Agent,
    ClassifierAgent,
    NotificationAgent,
    OrchestratorAgent,
    PatternMinerAgent,
    WorkflowEnforcerAgent,
)
from .bus import EventBus
from .config import AgentConfig, default_agent_config
from .scheduling import Clock, Ticker
from .store import IssueStore

logger = logging.getLogger(__name__)


class AgentRuntime:
    """
    Owns the agent set for one bus.

    Example:
        bus = EventBus()
        runtime = AgentRuntime(bus)
        await runtime.initialize()

        bus.publish(EventKind.ISSUE_CREATED, IssueCreated(id="ISS-1", title="..."), "api")
        await bus.flush()

        await runtime.shutdown()
    """

    def __init__(
        self,
        bus: EventBus,
        config: Optional[AgentConfig] = None,
        clock: Optional[Clock] = None,
        ticker: Optional[Ticker] = None,
        store: Optional[IssueStore] = None,
    ):
        self.bus = bus
        self.config = config or default_agent_config()

        self.orchestrator = OrchestratorAgent(bus)
        self.classifier = ClassifierAgent(bus, rules=self.config.keyword_rules, store=store)
        self.workflow_enforcer = WorkflowEnforcerAgent(
            bus,
            sla_configs=self.config.sla_configs,
            initial_stage=self.config.initial_stage,
            clock=clock,
            ticker=ticker,
            scan_interval=self.config.scan_interval_seconds,
        )
        self.notifier = NotificationAgent(bus)
        self.pattern_miner = PatternMinerAgent(bus)
        self._initialized = False

    @property
    def agents(self) -> List[Agent]:
        return [
            self.orchestrator,
            self.classifier,
            self.workflow_enforcer,
            self.notifier,
            self.pattern_miner,
        ]

    async def initialize(self) -> None:
        if self._initialized:
            logger.warning("Agent runtime is already initialized")
            return
        await asyncio.gather(*(agent.initialize() for agent in self.agents))
        self._initialized = True
        logger.info(f"Agent runtime started with {len(self.agents)} agents")

    async def shutdown(self) -> None:
        """Destroy every agent, then wait for in-flight handlers."""
        for agent in self.agents:
            agent.destroy()
        await self.bus.flush()
        self._initialized = False
        logger.info("Agent runtime stopped")


async def initialize_agents(bus: EventBus, **kwargs) -> AgentRuntime:
    """Create and initialize an AgentRuntime in one call."""
    runtime = AgentRuntime(bus, **kwargs)
    await runtime.initialize()
    return runtime
