# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Item cache: per-item enrichment details and per-user list snapshots.

Resource:
    - Detail entries: enrichment result for one issue/PR (GraphQL batch output).
    - List entries: one snapshot per (username, list type); notifications and orphaned
      lists also remember the window start (and, for orphaned, the repo set).

Cache:
    - Directory: ~/.cache/gh-triage/details/ (see triage_common.triage_details_cache_dir)
    - One JSON file per key, atomic replace; no index file.

TTL / invalidation:
    - detail:  24h, and miss as soon as the item's updated_at is newer than the cached one
    - lists:   notifications 30m, orphaned 15m, others 5m
    - window:  notifications/orphaned miss when the requested since (hour-truncated)
               is earlier than the cached since
    - orphaned also misses when the repo set differs (order-insensitive)
    - schema:  any entry whose version != schema_version is treated as absent
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from triage_common import CACHE_SCHEMA_VERSION, triage_details_cache_dir, utcnow
from triage_github.item_types import Details
from triage_types import ListType

from .cache_base import BaseFileCache
from .cache_entries import (
    DETAIL_FILE_PREFIX,
    LIST_FILE_PREFIX,
    CacheKey,
    CacheStats,
    DetailCacheEntry,
    ListCacheEntry,
    ListQuery,
    list_filename,
)
from .cache_ttl_utils import (
    WINDOWED_LIST_TYPES,
    detail_ttl_s,
    is_expired,
    list_ttl_s,
    same_repo_set,
    window_covers,
)

_logger = logging.getLogger(__name__)

# Longest first so "assigned-issues" never gets matched by a shorter prefix.
_LIST_TYPES_BY_LEN = sorted(ListType, key=lambda lt: len(lt.value), reverse=True)


def _list_type_from_filename(name: str) -> Optional[ListType]:
    rest = name[len(LIST_FILE_PREFIX):]
    for lt in _LIST_TYPES_BY_LEN:
        if rest.startswith(lt.value + "_"):
            return lt
    return None


class ItemCache(BaseFileCache):
    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        *,
        schema_version: int = CACHE_SCHEMA_VERSION,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(cache_dir=cache_dir or triage_details_cache_dir(), schema_version=schema_version)
        self._now = clock or utcnow

    # ----------------------------------------------------------------------------------
    # Detail entries
    # ----------------------------------------------------------------------------------

    def get(self, key: CacheKey, updated_at: datetime) -> Optional[Details]:
        """Cached details for `key`, or None if absent/stale/expired/other-version."""
        if not key.number:
            return None
        raw = self._read_json(key.filename())
        if raw is None:
            self._record("miss")
            return None
        try:
            entry = DetailCacheEntry.from_dict(raw)
        except (ValueError, TypeError, KeyError) as e:
            _logger.debug("Corrupt detail entry %s: %s", key.filename(), e)
            self._record("miss")
            return None

        if entry.version != self._schema_version:
            self._record("miss")
            return None
        if updated_at > entry.updated_at:
            self._record("miss")
            return None
        if is_expired(entry.cached_at, detail_ttl_s(), self._now()):
            self._record("miss")
            return None

        self._record("hit")
        return entry.details

    def set(self, key: CacheKey, updated_at: datetime, details: Details) -> None:
        """Write details for `key`. Raises OSError if the file can't be written."""
        if not key.number or details is None:
            return
        entry = DetailCacheEntry(
            details=details,
            cached_at=self._now(),
            updated_at=updated_at,
            version=self._schema_version,
        )
        self._write_json(key.filename(), entry.to_dict())

    # ----------------------------------------------------------------------------------
    # List entries
    # ----------------------------------------------------------------------------------

    def _list_entry_valid(self, list_type: ListType, entry: ListCacheEntry, query: Optional[ListQuery]) -> bool:
        if entry.version != self._schema_version:
            return False
        if is_expired(entry.cached_at, list_ttl_s(list_type), self._now()):
            return False
        if query is None:
            return True
        if list_type in WINDOWED_LIST_TYPES and not window_covers(entry.since_time, query.since):
            return False
        if list_type == ListType.ORPHANED and not same_repo_set(entry.repos, query.repos):
            return False
        return True

    def get_list(
        self, username: str, list_type: ListType, query: Optional[ListQuery] = None
    ) -> Optional[ListCacheEntry]:
        list_type = ListType(list_type)
        name = list_filename(username, list_type)
        raw = self._read_json(name)
        if raw is None:
            self._record("miss")
            return None
        try:
            entry = ListCacheEntry.from_dict(raw)
        except (ValueError, TypeError, KeyError) as e:
            _logger.debug("Corrupt list entry %s: %s", name, e)
            self._record("miss")
            return None

        if not self._list_entry_valid(list_type, entry, query):
            self._record("miss")
            return None
        self._record("hit")
        return entry

    def set_list(self, username: str, list_type: ListType, entry: ListCacheEntry, *, touch: bool = True) -> None:
        """Overwrite the list snapshot; version (and cached_at unless touch=False) are stamped here.

        touch=False keeps entry.cached_at, so an incrementally refreshed list still expires
        on the schedule of its last full fetch.
        """
        if touch:
            entry.cached_at = self._now()
        entry.version = self._schema_version
        self._write_json(list_filename(username, ListType(list_type)), entry.to_dict())

    # ----------------------------------------------------------------------------------
    # Stats
    # ----------------------------------------------------------------------------------

    def stats(self) -> CacheStats:
        """Classify every entry file by prefix and count total/valid per category.

        Unreadable or malformed files are skipped entirely.
        """
        stats = CacheStats()
        now = self._now()
        for path in self._iter_entry_files():
            name = path.name
            raw = self._read_json(name)
            if raw is None:
                continue

            if name.startswith(DETAIL_FILE_PREFIX):
                try:
                    detail = DetailCacheEntry.from_dict(raw)
                except (ValueError, TypeError, KeyError):
                    continue
                stats.detail.total += 1
                if detail.version == self._schema_version and not is_expired(detail.cached_at, detail_ttl_s(), now):
                    stats.detail.valid += 1
                continue

            if name.startswith(LIST_FILE_PREFIX):
                lt = _list_type_from_filename(name)
                if lt is None:
                    continue
                try:
                    lst = ListCacheEntry.from_dict(raw)
                except (ValueError, TypeError, KeyError):
                    continue
                bucket = stats.lists[lt]
                bucket.total += 1
                if self._list_entry_valid(lt, lst, None):
                    bucket.valid += 1

        return stats
