"""TTL and validity rules shared by the item cache.

This module keeps every "is this entry still usable?" decision in one place so that
get()/get_list() and stats() can't drift apart.
"""
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional, Sequence

from triage_common import (
    DETAIL_CACHE_TTL_S,
    ITEM_LIST_TTL_S,
    NOTIFICATIONS_LIST_TTL_S,
    ORPHANED_LIST_TTL_S,
    truncate_to_hour,
)
from triage_types import ListType

# Lists whose entries remember the requested window start (since_time).
WINDOWED_LIST_TYPES = frozenset({ListType.NOTIFICATIONS, ListType.ORPHANED})


def list_ttl_s(list_type: ListType) -> int:
    """TTL (seconds) for a cached list of the given kind.

      - notifications      -> 30m (incremental refresh happens inside the TTL)
      - orphaned           -> 15m
      - everything else    -> 5m
    """
    lt = ListType(list_type)
    if lt == ListType.NOTIFICATIONS:
        return NOTIFICATIONS_LIST_TTL_S
    if lt == ListType.ORPHANED:
        return ORPHANED_LIST_TTL_S
    return ITEM_LIST_TTL_S


def detail_ttl_s() -> int:
    return DETAIL_CACHE_TTL_S


def is_expired(cached_at: datetime, ttl_s: int, now: datetime) -> bool:
    return now - cached_at > timedelta(seconds=int(ttl_s))


def window_covers(cached_since: Optional[datetime], requested_since: Optional[datetime]) -> bool:
    """True if a list cached from `cached_since` covers a request starting at `requested_since`.

    Both sides are truncated to the hour so that runs a few minutes apart share an entry.
      - cached None          -> covers everything
      - requested None       -> wants everything; only a None cache covers it
      - requested < cached   -> caller wants older history than we have
    """
    if cached_since is None:
        return True
    if requested_since is None:
        return False
    return truncate_to_hour(requested_since) >= truncate_to_hour(cached_since)


def same_repo_set(cached: Optional[Sequence[str]], requested: Optional[Sequence[str]]) -> bool:
    """Order-insensitive repo list comparison (duplicates count)."""
    return Counter(cached or []) == Counter(requested or [])
