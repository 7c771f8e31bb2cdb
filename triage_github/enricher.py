# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Batch enrichment of items with PR/issue details.

Phase 1 (cache): every item is looked up in the ItemCache by (repo, subject type, number)
with its updated_at as the freshness token. Hits are attached and reported one by one.

Phase 2 (remote): misses are chunked into batches of `batch_size`. Each batch sends one
aliased PR query and one aliased issue query in parallel. At most
`max_concurrent_batches` batches are in flight. Results are attached, written back to the
cache, and reported per item; whatever a batch did not deliver (errors, null aliases) is
reported once as the batch remainder, so progress always sums to len(items).

A failing batch is logged and its items keep details=None. enrich() never raises for
remote errors.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence

from triage_cache.cache_entries import CacheKey
from triage_cache.cache_items import ItemCache
from triage_common import DEFAULT_ENRICH_BATCH_SIZE, DEFAULT_MAX_CONCURRENT_BATCHES
from triage_types import SubjectType

from .errors import InvalidRepositoryError
from .graphql import (
    EnrichmentTarget,
    build_issue_batch_query,
    build_pr_batch_query,
    parse_issue_batch,
    parse_pr_batch,
)
from .item_types import Details, Item, attach_details
from .task_group import CancelToken

if TYPE_CHECKING:  # pragma: no cover
    from . import GitHubAPIClient

_logger = logging.getLogger(__name__)

ProgressFn = Callable[[int, int], None]


def cache_key_for_item(item: Item) -> CacheKey:
    return CacheKey(repo=item.repository.full_name, subject_type=item.subject.type, number=item.subject_number())


@dataclass
class _Batch:
    index: int
    pr_targets: List[EnrichmentTarget] = field(default_factory=list)
    issue_targets: List[EnrichmentTarget] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.pr_targets) + len(self.issue_targets)


@dataclass
class _BatchResult:
    batch: _Batch
    details: Dict[int, Details] = field(default_factory=dict)
    skipped: bool = False


class BatchEnricher:
    def __init__(
        self,
        client: "GitHubAPIClient",
        cache: Optional[ItemCache] = None,
        *,
        batch_size: int = DEFAULT_ENRICH_BATCH_SIZE,
        max_concurrent_batches: int = DEFAULT_MAX_CONCURRENT_BATCHES,
    ):
        self.client = client
        self.cache = cache
        self.batch_size = max(1, int(batch_size))
        self.max_concurrent_batches = max(1, int(max_concurrent_batches))

    def enrich(
        self,
        items: Sequence[Item],
        on_progress: Optional[ProgressFn] = None,
        cancel: Optional[CancelToken] = None,
    ) -> int:
        """Attach details to `items` in place. Returns the number of cache hits."""
        total = len(items)
        report: ProgressFn = on_progress or (lambda _delta, _total: None)
        if total == 0:
            return 0

        cache_hits = 0
        misses: List[EnrichmentTarget] = []
        for idx, item in enumerate(items):
            key = cache_key_for_item(item)
            if self.cache is not None and key.number:
                details = self.cache.get(key, item.updated_at)
                if details is not None:
                    attach_details(item, details)
                    cache_hits += 1
                    report(1, total)
                    continue

            target = self._target_for(idx, item)
            if target is None:
                report(1, total)
                continue
            misses.append(target)

        _logger.debug("Enrichment: %d item(s), %d cache hit(s), %d to fetch", total, cache_hits, len(misses))
        if misses:
            self._fetch_remote(items, misses, report, total, cancel)
        return cache_hits

    @staticmethod
    def _target_for(idx: int, item: Item) -> Optional[EnrichmentTarget]:
        number = item.subject_number()
        if not number or item.subject.type not in (SubjectType.PULL_REQUEST.value, SubjectType.ISSUE.value):
            return None
        try:
            owner, repo = item.repository.owner_and_name()
        except InvalidRepositoryError:
            _logger.debug("Skipping enrichment for %s: bad repository name %r", item.id, item.repository.full_name)
            return None
        return EnrichmentTarget(index=idx, owner=owner, repo=repo, number=number)

    def _make_batches(self, items: Sequence[Item], targets: List[EnrichmentTarget]) -> List[_Batch]:
        batches: List[_Batch] = []
        for start in range(0, len(targets), self.batch_size):
            batch = _Batch(index=len(batches))
            for t in targets[start:start + self.batch_size]:
                if items[t.index].is_pr:
                    batch.pr_targets.append(t)
                else:
                    batch.issue_targets.append(t)
            batches.append(batch)
        return batches

    def _run_batch(self, batch: _Batch, cancel: Optional[CancelToken]) -> _BatchResult:
        if cancel is not None and cancel.cancelled:
            return _BatchResult(batch=batch, skipped=True)

        result = _BatchResult(batch=batch)
        jobs: Dict[str, Callable[[], Dict[int, Details]]] = {}
        if batch.pr_targets:
            jobs["pr"] = lambda: parse_pr_batch(
                self.client.graphql(build_pr_batch_query(batch.pr_targets), cancel=cancel), batch.pr_targets
            )
        if batch.issue_targets:
            jobs["issue"] = lambda: parse_issue_batch(
                self.client.graphql(build_issue_batch_query(batch.issue_targets), cancel=cancel), batch.issue_targets
            )

        # PR and issue sub-queries are independent; one failing keeps the other's results.
        with ThreadPoolExecutor(max_workers=max(1, len(jobs))) as pool:
            futures: Dict[Future, str] = {pool.submit(fn): kind for kind, fn in jobs.items()}
            for fut in as_completed(futures):
                kind = futures[fut]
                try:
                    result.details.update(fut.result())
                except Exception as e:
                    _logger.warning("Enrichment batch %d (%s) failed: %s", batch.index, kind, e)
        return result

    def _fetch_remote(
        self,
        items: Sequence[Item],
        targets: List[EnrichmentTarget],
        report: ProgressFn,
        total: int,
        cancel: Optional[CancelToken],
    ) -> None:
        batches = self._make_batches(items, targets)
        workers = min(self.max_concurrent_batches, len(batches))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(self._run_batch, b, cancel): b for b in batches}
            for fut in as_completed(futures):
                try:
                    res = fut.result()
                except Exception as e:
                    _logger.warning("Enrichment batch %d failed: %s", futures[fut].index, e)
                    res = _BatchResult(batch=futures[fut])
                applied = 0
                if res.skipped:
                    _logger.debug("Enrichment batch %d skipped (cancelled)", res.batch.index)
                for idx, details in res.details.items():
                    item = items[idx]
                    attach_details(item, details)
                    if self.cache is not None:
                        try:
                            self.cache.set(cache_key_for_item(item), item.updated_at, details)
                        except OSError as e:
                            _logger.debug("Failed to cache details for %s: %s", item.id, e)
                    applied += 1
                    report(1, total)
                remainder = res.batch.size - applied
                if remainder > 0:
                    report(remainder, total)
