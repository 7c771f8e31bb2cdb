# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Fetch orchestrator: run every item source concurrently and aggregate.

Sources (one task each, in a TaskGroup sharing one CancelToken):
    notifications, review-requested, authored, assigned-issues, assigned-prs
    + orphaned (only when repos are configured)

Error policy:
    - RateLimitedError in any task -> result.rate_limited = True, task ends normally
    - hard error in the primary source (notifications) -> cancels the group, FetchError
    - hard error in any other source -> logged, stored in result.errors, empty result
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .api.base_cached import SourceResult
from .errors import FetchError, RateLimitedError
from .item_store import ItemStore
from .item_types import Item, split_repo_name
from .orphaned import OrphanedSearchOptions
from .ratelimit import RateLimitMonitor, RateLimitSnapshot
from .task_group import CancelledError, CancelToken, TaskGroup

_logger = logging.getLogger(__name__)

PRIMARY_SOURCE = "notifications"

ProgressFn = Callable[[int, int], None]


@dataclass
class FetchOptions:
    orphaned: Optional[OrphanedSearchOptions] = None

    @property
    def orphaned_enabled(self) -> bool:
        return self.orphaned is not None and bool(self.orphaned.repos)


@dataclass
class MergeStats:
    total: int = 0
    duplicates: int = 0
    by_source: Dict[str, int] = field(default_factory=dict)


@dataclass
class FetchResult:
    notifications: SourceResult = field(default_factory=SourceResult)
    review_prs: SourceResult = field(default_factory=SourceResult)
    authored_prs: SourceResult = field(default_factory=SourceResult)
    assigned_issues: SourceResult = field(default_factory=SourceResult)
    assigned_prs: SourceResult = field(default_factory=SourceResult)
    orphaned: SourceResult = field(default_factory=SourceResult)
    rate_limited: bool = False
    rate_limit: Optional[RateLimitSnapshot] = None
    errors: Dict[str, BaseException] = field(default_factory=dict)

    def sources(self) -> List[Tuple[str, SourceResult]]:
        """(name, result) in merge precedence order."""
        return [
            ("notifications", self.notifications),
            ("review-requested", self.review_prs),
            ("authored", self.authored_prs),
            ("assigned-issues", self.assigned_issues),
            ("assigned-prs", self.assigned_prs),
            ("orphaned", self.orphaned),
        ]

    def total_fetched(self) -> int:
        return sum(len(r.items) for _name, r in self.sources())

    def merge(self) -> Tuple[List[Item], MergeStats]:
        """Union of every source, deduplicated by Item.identity_key() (first source wins)."""
        stats = MergeStats()
        seen: Dict[str, Item] = {}
        for name, res in self.sources():
            added = 0
            for it in res.items:
                key = it.identity_key()
                if key in seen:
                    stats.duplicates += 1
                    continue
                seen[key] = it
                added += 1
            stats.by_source[name] = added
        stats.total = len(seen)
        return list(seen.values()), stats


class FetchOrchestrator:
    def __init__(self, store: ItemStore, monitor: RateLimitMonitor):
        self.store = store
        self.monitor = monitor

    def fetch_all(
        self,
        options: Optional[FetchOptions] = None,
        *,
        cancel: Optional[CancelToken] = None,
        on_progress: Optional[ProgressFn] = None,
    ) -> FetchResult:
        """Fetch every source concurrently.

        on_progress gets (0, total) once, then (1, total) as each source finishes.

        Raises:
            InvalidRepositoryError: an orphaned repo name is malformed (before any task starts).
            FetchError: the primary source failed with a non-rate-limit error (or the call
                was cancelled). `.result` carries whatever the other sources produced.
        """
        options = options or FetchOptions()
        if options.orphaned_enabled:
            for full_name in options.orphaned.repos:
                split_repo_name(full_name)
        result = FetchResult()
        mu = threading.Lock()

        tasks: List[Tuple[str, Callable[[CancelToken], SourceResult], str]] = [
            (PRIMARY_SOURCE, self.store.unread_items, "notifications"),
            ("review-requested", self.store.review_requested_prs, "review_prs"),
            ("authored", self.store.authored_prs, "authored_prs"),
            ("assigned-issues", self.store.assigned_issues, "assigned_issues"),
            ("assigned-prs", self.store.assigned_prs, "assigned_prs"),
        ]
        if options.orphaned_enabled:
            orphaned_opts = options.orphaned
            tasks.append(
                ("orphaned", lambda tok: self.store.orphaned_contributions(orphaned_opts, tok), "orphaned")
            )

        total = len(tasks)

        def _progress() -> None:
            if on_progress is not None:
                on_progress(1, total)

        if on_progress is not None:
            on_progress(0, total)

        def _run(name: str, fn: Callable[[CancelToken], SourceResult], attr: str, token: CancelToken) -> None:
            try:
                res = fn(token)
                with mu:
                    setattr(result, attr, res)
            except RateLimitedError:
                _logger.info("%s: rate limited", name)
                with mu:
                    result.rate_limited = True
            except CancelledError:
                if name == PRIMARY_SOURCE:
                    raise
                _logger.debug("%s: cancelled", name)
            except Exception as e:
                if name == PRIMARY_SOURCE:
                    raise FetchError(name, e, result) from e
                _logger.warning("%s: fetch failed: %s", name, e)
                with mu:
                    result.errors[name] = e
            finally:
                _progress()

        group = TaskGroup(cancel, max_workers=total)
        for name, fn, attr in tasks:
            group.go(_run, name, fn, attr, group.token)

        try:
            group.wait()
        except FetchError:
            result.rate_limit = self.monitor.snapshot()
            raise
        except CancelledError as e:
            result.rate_limit = self.monitor.snapshot()
            raise FetchError(PRIMARY_SOURCE, e, result) from e

        result.rate_limit = self.monitor.snapshot()
        if result.rate_limited:
            _logger.warning("Rate limited during fetch; some sources may be empty (%s)", result.rate_limit.describe())
        return result
