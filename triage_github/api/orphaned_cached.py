"""Orphaned contributions across the monitored repos.

Resource:
    POST /graphql, one query per repo (see triage_github/orphaned.py)

Cache:
    list_orphaned_<username>.json, with since_time and the repo list.

TTL:
    15m (ORPHANED_LIST_TTL_S). Also a miss when the requested window starts earlier than the
    cached one, or the repo set changed.
"""

from __future__ import annotations

from typing import List, Optional

from triage_cache.cache_entries import ListQuery
from triage_types import ListType

from ..item_types import Item, split_repo_name
from ..orphaned import OrphanedSearchOptions, list_orphaned_contributions
from ..task_group import CancelToken
from .base_cached import CachedListSource, SourceResult


class OrphanedSource(CachedListSource):
    def __init__(self, api, cache, monitor, username: str, *, options: OrphanedSearchOptions, max_workers: int):
        super().__init__(api, cache, monitor, username)
        for repo in options.repos:
            split_repo_name(repo)
        self.options = options
        self.max_workers = max_workers

    @property
    def list_type(self) -> ListType:
        return ListType.ORPHANED

    def query(self) -> ListQuery:
        return ListQuery(since=self.options.since, repos=list(self.options.repos))

    def fetch(self, cancel: Optional[CancelToken]) -> List[Item]:
        return list_orphaned_contributions(self.api, self.options, cancel=cancel, max_workers=self.max_workers)

    def get(self, cancel: Optional[CancelToken] = None) -> SourceResult:
        if not self.options.repos:
            return SourceResult()
        return super().get(cancel)
