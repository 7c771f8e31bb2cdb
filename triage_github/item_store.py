# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""ItemStore: the cache-or-fetch façade over every item source.

    store = ItemStore(client, cache, monitor, username="octocat", since=since)
    unread = store.unread_items()
    prs = store.review_requested_prs()
    hits = store.enrich(unread.items, on_progress)

The store owns no state beyond its collaborators; each call builds the per-source object
and runs its get() flow.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional, Sequence

from triage_cache.cache_entries import CacheStats
from triage_cache.cache_items import ItemCache
from triage_common import (
    DEFAULT_ENRICH_BATCH_SIZE,
    DEFAULT_MAX_CONCURRENT_BATCHES,
    DEFAULT_ORPHANED_WORKERS,
)
from triage_types import ListType

from .api.base_cached import SourceResult
from .api.notifications_cached import UnreadNotificationsSource
from .api.orphaned_cached import OrphanedSource
from .api.search_issues_cached import SearchListSource
from .enricher import BatchEnricher, ProgressFn
from .item_types import Item
from .orphaned import OrphanedSearchOptions
from .ratelimit import RateLimitMonitor
from .task_group import CancelToken

if TYPE_CHECKING:  # pragma: no cover
    from . import GitHubAPIClient

_logger = logging.getLogger(__name__)


class ItemStore:
    def __init__(
        self,
        client: "GitHubAPIClient",
        cache: Optional[ItemCache],
        monitor: RateLimitMonitor,
        *,
        username: str,
        since: Optional[datetime],
        repos_filter: Optional[List[str]] = None,
        enrich_batch_size: int = DEFAULT_ENRICH_BATCH_SIZE,
        max_concurrent_batches: int = DEFAULT_MAX_CONCURRENT_BATCHES,
        orphaned_workers: int = DEFAULT_ORPHANED_WORKERS,
    ):
        self.client = client
        self.cache = cache
        self.monitor = monitor
        self.username = username
        self.since = since
        self.repos_filter = repos_filter
        self.orphaned_workers = int(orphaned_workers)
        self.enricher = BatchEnricher(
            client,
            cache,
            batch_size=enrich_batch_size,
            max_concurrent_batches=max_concurrent_batches,
        )

    # ----------------------------------------------------------------------------------
    # Item sources
    # ----------------------------------------------------------------------------------

    def unread_items(self, cancel: Optional[CancelToken] = None) -> SourceResult:
        return UnreadNotificationsSource(
            self.client, self.cache, self.monitor, self.username, since=self.since, repos=self.repos_filter
        ).get(cancel)

    def _search(self, kind: ListType, cancel: Optional[CancelToken]) -> SourceResult:
        return SearchListSource(self.client, self.cache, self.monitor, self.username, kind=kind).get(cancel)

    def review_requested_prs(self, cancel: Optional[CancelToken] = None) -> SourceResult:
        return self._search(ListType.REVIEW_REQUESTED, cancel)

    def authored_prs(self, cancel: Optional[CancelToken] = None) -> SourceResult:
        return self._search(ListType.AUTHORED, cancel)

    def assigned_issues(self, cancel: Optional[CancelToken] = None) -> SourceResult:
        return self._search(ListType.ASSIGNED_ISSUES, cancel)

    def assigned_prs(self, cancel: Optional[CancelToken] = None) -> SourceResult:
        return self._search(ListType.ASSIGNED_PRS, cancel)

    def orphaned_contributions(self, options: OrphanedSearchOptions, cancel: Optional[CancelToken] = None) -> SourceResult:
        """Orphaned contributions in options.repos (empty result when no repos are given)."""
        if not options.repos:
            return SourceResult()
        if options.since is None:
            options = dataclasses.replace(options, since=self.since)
        return OrphanedSource(
            self.client, self.cache, self.monitor, self.username, options=options, max_workers=self.orphaned_workers
        ).get(cancel)

    # ----------------------------------------------------------------------------------
    # Enrichment / cache admin
    # ----------------------------------------------------------------------------------

    def enrich(self, items: Sequence[Item], on_progress: Optional[ProgressFn] = None, cancel: Optional[CancelToken] = None) -> int:
        """Attach details in place; returns the cache-hit count (remote failures are non-fatal)."""
        return self.enricher.enrich(items, on_progress, cancel)

    def cache_stats(self) -> CacheStats:
        if self.cache is None:
            return CacheStats()
        return self.cache.stats()

    def cache_clear(self) -> None:
        if self.cache is not None:
            self.cache.clear()
