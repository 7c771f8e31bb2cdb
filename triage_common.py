# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Shared constants and path helpers for gh-triage.

Keep this module dependency-free (stdlib only) so that every other module can
import it without cycles.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# ======================================================================================
# Cache TTLs (single source of truth)
# ======================================================================================

DETAIL_CACHE_TTL_S: int = 24 * 3600
# ^ TTL (seconds) for enriched per-item details.
#   Details are also invalidated as soon as the item's updated_at moves past the cached one,
#   so this is only the upper bound for items that never change.

NOTIFICATIONS_LIST_TTL_S: int = 30 * 60
# ^ TTL (seconds) for the unread-notifications list snapshot.
#   Within the TTL we still fetch incrementally (since last_fetch_time) and merge.

ITEM_LIST_TTL_S: int = 5 * 60
# ^ TTL (seconds) for search-backed lists (review-requested, authored, assigned issues/PRs).

ORPHANED_LIST_TTL_S: int = 15 * 60
# ^ TTL (seconds) for orphaned-contribution lists (one GraphQL query per monitored repo).

CACHE_SCHEMA_VERSION: int = 3
# ^ Bump when the on-disk entry format changes; entries with another version read as misses.

# ======================================================================================
# Remote fetch tuning
# ======================================================================================

GITHUB_API_BASE_URL: str = "https://api.github.com"
GITHUB_GRAPHQL_URL: str = "https://api.github.com/graphql"

DEFAULT_PER_PAGE: int = 100
# ^ GitHub's max page size for notifications and search.

DEFAULT_PAGE_WORKERS: int = 8
# ^ Max concurrent page fetches once the last page is known (Link header).

DEFAULT_ENRICH_BATCH_SIZE: int = 100
# ^ Items per aliased GraphQL query. 100 stays well under GitHub's node/complexity limits.

DEFAULT_MAX_CONCURRENT_BATCHES: int = 12
# ^ In-flight GraphQL batches. Higher values start tripping secondary (abuse) rate limits.

DEFAULT_ORPHANED_WORKERS: int = 10
# ^ Max repos scanned concurrently for orphaned contributions.

DEFAULT_REQUEST_TIMEOUT_S: int = 30

RATE_LIMIT_LOW_WATERMARK: int = 100
# ^ Remaining-quota threshold at which each response is logged (DEBUG).

RATE_LIMIT_DEFAULT_BACKOFF_S: int = 60
# ^ Used when a 429/403 carries neither X-RateLimit-Reset nor Retry-After.

PROGRESS_LOG_STEP_PERCENT: int = 5
# ^ CLI progress lines are emitted at most once per this many percent.


def triage_cache_dir() -> Path:
    """Return the cache directory for gh-triage.

    Resolution order:
    - GH_TRIAGE_CACHE_DIR (explicit override)
    - $XDG_CACHE_HOME/gh-triage
    - ~/.cache/gh-triage
    """
    override = os.environ.get("GH_TRIAGE_CACHE_DIR")
    if override:
        return Path(override).expanduser()

    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        return Path(xdg).expanduser() / "gh-triage"

    return Path.home() / ".cache" / "gh-triage"


def triage_details_cache_dir(base: Optional[Path] = None) -> Path:
    """Directory holding the per-key entry files (details and list snapshots)."""
    return Path(base or triage_cache_dir()) / "details"


def triage_config_path() -> Path:
    """Default config file path ($XDG_CONFIG_HOME/gh-triage/config.yaml)."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    root = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return root / "gh-triage" / "config.yaml"


def utcnow() -> datetime:
    """Timezone-aware UTC now (the default clock everywhere)."""
    return datetime.now(timezone.utc)


def parse_iso8601(value: object) -> Optional[datetime]:
    """Parse a GitHub timestamp ("2025-01-02T03:04:05Z") into an aware datetime.

    Returns None for empty/invalid values.
    """
    if not value:
        return None
    try:
        s = str(value).strip()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_iso8601(dt: Optional[datetime]) -> Optional[str]:
    """Inverse of parse_iso8601 (UTC, trailing 'Z'); None stays None."""
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def truncate_to_hour(dt: datetime) -> datetime:
    return dt.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)
