# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Configuration for gh-triage.

File format (YAML, every key optional):

    since: 1w
    cache_dir: ~/.cache/gh-triage
    orphaned:
      enabled: true
      repos: [owner/repo, owner/other]
      stale_days: 7
      consecutive_author_comments: 2
      max_items_per_repo: 50
    concurrency:
      page_workers: 8
      enrich_batch_size: 100
      max_concurrent_batches: 12
      orphaned_workers: 10
      request_timeout_s: 30

A missing file yields the defaults. Invalid values raise ConfigError.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from triage_common import (
    DEFAULT_ENRICH_BATCH_SIZE,
    DEFAULT_MAX_CONCURRENT_BATCHES,
    DEFAULT_ORPHANED_WORKERS,
    DEFAULT_PAGE_WORKERS,
    DEFAULT_REQUEST_TIMEOUT_S,
    triage_config_path,
    utcnow,
)

_logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Invalid configuration (bad YAML, wrong types, unknown duration units)."""


_DURATION_RE = re.compile(r"^\s*(\d+)\s*([a-zA-Z]+)\s*$")

_DURATION_UNITS: Dict[str, timedelta] = {}
for _names, _delta in (
    (("m", "min", "mins"), timedelta(minutes=1)),
    (("h", "hr", "hrs", "hour", "hours"), timedelta(hours=1)),
    (("d", "day", "days"), timedelta(days=1)),
    (("w", "wk", "wks", "week", "weeks"), timedelta(weeks=1)),
    (("mo", "month", "months"), timedelta(days=30)),
    (("y", "yr", "yrs", "year", "years"), timedelta(days=365)),
):
    for _name in _names:
        _DURATION_UNITS[_name] = _delta


def parse_duration(value: str) -> timedelta:
    """Parse a human duration like "1w", "30d", "6mo", "12h".

    Raises:
        ConfigError: on malformed input or unknown unit.
    """
    m = _DURATION_RE.match(str(value or ""))
    if not m:
        raise ConfigError(f"invalid duration format: {value!r} (use e.g. 1w, 30d, 6mo)")
    n, unit = int(m.group(1)), m.group(2).lower()
    if unit not in _DURATION_UNITS:
        raise ConfigError(f"unknown duration unit: {unit!r}")
    return n * _DURATION_UNITS[unit]


def since_from_duration(value: str, *, now: Optional[datetime] = None) -> datetime:
    """Start of the lookback window: now - parse_duration(value)."""
    return (now or utcnow()) - parse_duration(value)


@dataclass
class OrphanedConfig:
    enabled: bool = False
    repos: List[str] = field(default_factory=list)
    stale_days: int = 7
    consecutive_author_comments: int = 2
    max_items_per_repo: int = 50

    @property
    def active_repos(self) -> List[str]:
        """Repos to scan; empty unless detection is enabled."""
        return list(self.repos) if self.enabled else []


@dataclass
class ConcurrencyConfig:
    page_workers: int = DEFAULT_PAGE_WORKERS
    enrich_batch_size: int = DEFAULT_ENRICH_BATCH_SIZE
    max_concurrent_batches: int = DEFAULT_MAX_CONCURRENT_BATCHES
    orphaned_workers: int = DEFAULT_ORPHANED_WORKERS
    request_timeout_s: int = DEFAULT_REQUEST_TIMEOUT_S


@dataclass
class TriageConfig:
    since: str = "1w"
    cache_dir: Optional[Path] = None
    orphaned: OrphanedConfig = field(default_factory=OrphanedConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)

    def since_time(self, *, now: Optional[datetime] = None) -> datetime:
        return since_from_duration(self.since, now=now)


def _positive_int(section: str, key: str, raw: Any) -> int:
    try:
        val = int(raw)
    except (ValueError, TypeError):
        raise ConfigError(f"{section}.{key}: expected an integer, got {raw!r}")
    if val <= 0:
        raise ConfigError(f"{section}.{key}: must be > 0, got {val}")
    return val


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    raw = data.get(name)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{name}: expected a mapping, got {type(raw).__name__}")
    return raw


def config_from_dict(data: Dict[str, Any]) -> TriageConfig:
    """Build a TriageConfig from an already-parsed mapping (unknown keys are ignored)."""
    cfg = TriageConfig()

    if data.get("since") is not None:
        cfg.since = str(data["since"])
        parse_duration(cfg.since)
    if data.get("cache_dir"):
        cfg.cache_dir = Path(str(data["cache_dir"])).expanduser()

    orphaned = _section(data, "orphaned")
    if orphaned:
        repos = orphaned.get("repos") or []
        if not isinstance(repos, list):
            raise ConfigError("orphaned.repos: expected a list of owner/name strings")
        cfg.orphaned.enabled = bool(orphaned.get("enabled", bool(repos)))
        cfg.orphaned.repos = [str(r).strip() for r in repos if str(r).strip()]
        for key in ("stale_days", "consecutive_author_comments", "max_items_per_repo"):
            if orphaned.get(key) is not None:
                setattr(cfg.orphaned, key, _positive_int("orphaned", key, orphaned[key]))

    concurrency = _section(data, "concurrency")
    for key in (
        "page_workers",
        "enrich_batch_size",
        "max_concurrent_batches",
        "orphaned_workers",
        "request_timeout_s",
    ):
        if concurrency.get(key) is not None:
            setattr(cfg.concurrency, key, _positive_int("concurrency", key, concurrency[key]))

    return cfg


def load_config(path: Optional[Path] = None) -> TriageConfig:
    """Load config from YAML (default: triage_config_path()). Missing file -> defaults."""
    p = Path(path) if path is not None else triage_config_path()
    if not p.exists():
        _logger.debug("No config file at %s; using defaults", p)
        return TriageConfig()

    try:
        with open(p, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to read config {p}: {e}") from e

    if data is None:
        return TriageConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"{p}: top level must be a mapping")
    cfg = config_from_dict(data)
    _logger.debug("Loaded config from %s", p)
    return cfg
