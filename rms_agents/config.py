"""
RMS Agents Configuration

Centralized configuration for the agent substrate. Environment variables
override the defaults; SLA and classification tables can also be loaded from
a YAML file.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import List, Optional, Union

import yaml

from .exceptions import ConfigError
from .models import KeywordRule, StageSLAConfig

logger = logging.getLogger(__name__)

# =============================================================================
# Runtime Configuration
# =============================================================================

SLA_SCAN_INTERVAL_SECONDS = float(os.environ.get("RMS_SLA_SCAN_INTERVAL", "300"))
LOG_LEVEL = os.environ.get("RMS_LOG_LEVEL", "INFO")
AGENT_CONFIG_PATH = os.environ.get("RMS_AGENT_CONFIG", "")
DB_PATH = os.environ.get("RMS_DB_PATH", "./.rms/rms.db")


# =============================================================================
# Agent Limits
# =============================================================================

HISTORY_CAPACITY = 1000          # Pattern miner event history
ANALYSIS_WINDOW = 100            # Most recent events used for frequency counts
FREQUENCY_THRESHOLD = 10         # Count that makes a kind a pattern
NOTIFICATION_CAPACITY = 100
DEFAULT_NOTIFICATION_LIMIT = 50


# =============================================================================
# Workflow Tables
# =============================================================================

INITIAL_STAGE = "new"

DEFAULT_SLA_CONFIGS = [
    StageSLAConfig(stage="new", max_duration=timedelta(hours=24), warning_threshold=0.75),
    StageSLAConfig(stage="in-progress", max_duration=timedelta(days=7), warning_threshold=0.8),
]

# Order matters: the first matching rule wins.
DEFAULT_KEYWORD_RULES = [
    KeywordRule(keywords=("crash", "error", "bug", "broken"), category="bug", priority="high"),
    KeywordRule(keywords=("feature", "enhance", "add", "support"), category="feature", priority="medium"),
    KeywordRule(keywords=("slow", "performance", "timeout"), category="performance", priority="high"),
    KeywordRule(keywords=("security", "vulnerability", "auth"), category="security", priority="critical"),
]


@dataclass
class AgentConfig:
    """Static input for the agents; never mutated at runtime."""
    sla_configs: List[StageSLAConfig] = field(default_factory=lambda: list(DEFAULT_SLA_CONFIGS))
    keyword_rules: List[KeywordRule] = field(default_factory=lambda: list(DEFAULT_KEYWORD_RULES))
    initial_stage: str = INITIAL_STAGE
    scan_interval_seconds: float = SLA_SCAN_INTERVAL_SECONDS


def default_agent_config() -> AgentConfig:
    return AgentConfig()


def load_agent_config(path: Optional[Union[str, Path]] = None) -> AgentConfig:
    """
    Load agent configuration from YAML.

    Sections that are absent fall back to the built-in defaults. With no path
    (and RMS_AGENT_CONFIG unset) the defaults are returned.

    Example file:
        initial_stage: new
        scan_interval_seconds: 300
        sla:
          - stage: new
            max_duration_hours: 24
            warning_threshold: 0.75
        rules:
          - keywords: [crash, error]
            category: bug
            priority: high

    Raises:
        ConfigError: file missing, unreadable or malformed
    """
    path = path or AGENT_CONFIG_PATH
    if not path:
        return default_agent_config()

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Agent config not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Agent config {path} must be a mapping")

    config = AgentConfig(
        initial_stage=str(data.get("initial_stage", INITIAL_STAGE)),
        scan_interval_seconds=_parse_interval(data.get("scan_interval_seconds", SLA_SCAN_INTERVAL_SECONDS), path),
    )
    if "sla" in data:
        config.sla_configs = [_parse_sla(entry, path) for entry in data["sla"] or []]
    if "rules" in data:
        config.keyword_rules = [_parse_rule(entry, path) for entry in data["rules"] or []]

    logger.info(
        f"Loaded agent config from {path}: "
        f"{len(config.sla_configs)} SLA stages, {len(config.keyword_rules)} rules"
    )
    return config


def _parse_interval(value, path: Path) -> float:
    try:
        interval = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid scan_interval_seconds in {path}: {value!r}") from e
    if not interval > 0:
        raise ConfigError(f"scan_interval_seconds must be positive in {path}, got {interval:g}")
    return interval


def _parse_sla(entry: dict, path: Path) -> StageSLAConfig:
    try:
        if "max_duration_seconds" in entry:
            duration = timedelta(seconds=float(entry["max_duration_seconds"]))
        else:
            duration = timedelta(hours=float(entry["max_duration_hours"]))
        return StageSLAConfig(
            stage=str(entry["stage"]),
            max_duration=duration,
            warning_threshold=float(entry.get("warning_threshold", 0.75)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"Invalid SLA entry in {path}: {entry!r} ({e})") from e


def _parse_rule(entry: dict, path: Path) -> KeywordRule:
    try:
        keywords = entry["keywords"]
        if isinstance(keywords, str) or not keywords:
            raise ValueError("keywords must be a non-empty list")
        return KeywordRule(
            keywords=tuple(str(kw).lower() for kw in keywords),
            category=str(entry["category"]),
            priority=str(entry["priority"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigError(f"Invalid rule entry in {path}: {entry!r} ({e})") from e
