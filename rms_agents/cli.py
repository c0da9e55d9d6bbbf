"""
RMS Agents - CLI Interface

Command-line tools for inspecting configuration and replaying a scripted
scenario through the full agent set on a simulated clock.
"""

import asyncio
import logging
from datetime import timedelta
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .bus import EventBus, EventKind, IssueCreated, WorkflowTransition
from .config import LOG_LEVEL, load_agent_config
from .exceptions import ConfigError
from .runtime import AgentRuntime
from .scheduling import ManualClock, ManualTicker
from .store import IssueRecord, IssueStore


console = Console()

SAMPLE_ISSUES = [
    ("App crash on checkout", "Stack trace attached"),
    ("Add dark mode", "Users keep asking for it"),
    ("Search is slow", "Takes 8s on large projects"),
    ("Auth token leaks in logs", ""),
    ("Typo on landing page", ""),
]


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", default=LOG_LEVEL, show_default=True, help="Logging level")
def cli(log_level: str):
    """RMS Agents - event-driven coordination for the issue tracker."""
    _setup_logging(log_level)


@cli.command("show-config")
@click.option("--config", "config_path", type=click.Path(), help="Agent config YAML")
def show_config(config_path: Optional[str]):
    """Print the SLA and classification tables."""
    try:
        config = load_agent_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1)

    sla_table = Table(title="Stage SLAs")
    sla_table.add_column("Stage", style="cyan")
    sla_table.add_column("Max duration")
    sla_table.add_column("Warn at", justify="right")
    for sla in config.sla_configs:
        sla_table.add_row(sla.stage, str(sla.max_duration), f"{sla.warning_threshold:.0%}")

    rule_table = Table(title="Classification rules (first match wins)")
    rule_table.add_column("#", justify="right")
    rule_table.add_column("Keywords")
    rule_table.add_column("Category", style="green")
    rule_table.add_column("Priority", style="magenta")
    for i, rule in enumerate(config.keyword_rules, 1):
        rule_table.add_row(str(i), ", ".join(rule.keywords), rule.category, rule.priority)

    console.print(f"Initial stage: [bold]{config.initial_stage}[/bold]   "
                  f"Scan interval: [bold]{config.scan_interval_seconds:g}s[/bold]")
    console.print(sla_table)
    console.print(rule_table)


@cli.command()
@click.option("--config", "config_path", type=click.Path(), help="Agent config YAML")
@click.option("--issues", "issue_count", default=5, show_default=True, help="Issues to create")
@click.option("--hours", default=30, show_default=True, help="Simulated hours to run")
@click.option("--step-minutes", default=60, show_default=True, help="Simulated minutes per SLA scan")
@click.option("--db", "db_path", type=click.Path(), help="Persist classifications to this SQLite file")
def simulate(config_path: Optional[str], issue_count: int, hours: int, step_minutes: int, db_path: Optional[str]):
    """Replay a scripted scenario on a simulated clock."""
    try:
        config = load_agent_config(config_path)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1)

    if step_minutes <= 0:
        console.print("[red]Error: --step-minutes must be positive[/red]")
        raise SystemExit(1)

    store = IssueStore(db_path) if db_path else None
    runtime = asyncio.run(_simulate(config, issue_count, hours, step_minutes, store))
    _print_report(runtime)


async def _simulate(config, issue_count: int, hours: int, step_minutes: int, store: Optional[IssueStore]) -> AgentRuntime:
    bus = EventBus()
    clock = ManualClock()
    ticker = ManualTicker()
    runtime = AgentRuntime(bus, config=config, clock=clock, ticker=ticker, store=store)

    await runtime.initialize()

    for i in range(issue_count):
        title, description = SAMPLE_ISSUES[i % len(SAMPLE_ISSUES)]
        issue_id = f"ISS-{i + 1}"
        if store is not None and store.find_by_id(issue_id) is None:
            store.create(IssueRecord(id=issue_id, title=title, description=description))
        bus.publish(
            EventKind.ISSUE_CREATED,
            IssueCreated(id=issue_id, title=title, description=description),
            source="cli",
            correlation_id=f"sim-{issue_id}",
        )
    await bus.flush()

    # Every other issue is picked up straight away.
    for i in range(0, issue_count, 2):
        bus.publish(
            EventKind.WORKFLOW_TRANSITION,
            WorkflowTransition(issue_id=f"ISS-{i + 1}", to_stage="in-progress", from_stage=config.initial_stage),
            source="cli",
        )
    await bus.flush()

    elapsed = timedelta(0)
    step = timedelta(minutes=step_minutes)
    while elapsed < timedelta(hours=hours):
        clock.advance(step)
        elapsed += step
        ticker.fire()
        await bus.flush()

    await runtime.shutdown()
    return runtime


def _print_report(runtime: AgentRuntime) -> None:
    status = runtime.orchestrator.get_status()
    console.print(Panel.fit(
        f"Events observed: [bold]{status['total_observed']}[/bold]\n"
        f"Escalations: [bold red]{status['escalations']}[/bold red]\n"
        f"Tracked issues: [bold]{len(runtime.workflow_enforcer.tracked_issue_ids())}[/bold]",
        title="Simulation complete",
    ))

    colors = {"info": "blue", "warning": "yellow", "error": "red"}
    notif_table = Table(title="Latest notifications")
    notif_table.add_column("Level")
    notif_table.add_column("Title")
    notif_table.add_column("Message")
    for n in runtime.notifier.get_notifications(limit=15):
        color = colors.get(n.level.value, "white")
        notif_table.add_row(f"[{color}]{n.level.value}[/{color}]", n.title, n.message)
    console.print(notif_table)

    pattern_table = Table(title="Mined patterns")
    pattern_table.add_column("Pattern", style="cyan")
    pattern_table.add_column("Occurrences", justify="right")
    pattern_table.add_column("Confidence", justify="right")
    for p in runtime.pattern_miner.get_patterns():
        pattern_table.add_row(p.id, str(p.occurrences), f"{p.confidence:.2f}")
    console.print(pattern_table)


def main():
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
