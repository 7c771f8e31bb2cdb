"""Unread notifications (the primary item source).

Resource:
    GET /notifications?all=false&since=<ts>&per_page=100 (paginated)

Cache:
    list_notifications_<username>.json, with since_time = requested window start.

TTL / refresh:
    - no valid entry           -> full fetch since the window start
    - valid entry              -> incremental fetch since last_fetch_time, merged into the
                                  cached items (fresh wins by id; cached items that are no
                                  longer unread or fall outside the window are dropped)
    - incremental fetch fails  -> cached items as-is
    - rate limited             -> cached items if any, otherwise RateLimitedError
    Entries expire after 30m (NOTIFICATIONS_LIST_TTL_S), which forces a full refetch and
    drops items that were read elsewhere.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Sequence

from triage_cache.cache_entries import ListCacheEntry, ListQuery
from triage_types import ListType

from ..errors import GitHubAPIError, RateLimitedError
from ..item_types import Item
from ..task_group import CancelToken
from .base_cached import CachedListSource, SourceResult


def merge_notifications(cached: Sequence[Item], fresh: Sequence[Item], since: Optional[datetime]) -> List[Item]:
    """Merge freshly fetched notifications into a cached snapshot.

    Fresh items replace cached items with the same id. Cached-only items survive if they
    are still unread and not older than `since`. Idempotent: merge(merge(c, f), f) == merge(c, f).
    """
    by_id: Dict[str, Item] = {}
    for it in cached:
        if not it.unread:
            continue
        if since is not None and it.updated_at < since:
            continue
        by_id[it.id] = it
    for it in fresh:
        by_id[it.id] = it
    return sorted(by_id.values(), key=lambda it: it.updated_at, reverse=True)


class UnreadNotificationsSource(CachedListSource):
    def __init__(self, api, cache, monitor, username: str, *, since: Optional[datetime], repos: Optional[List[str]] = None):
        super().__init__(api, cache, monitor, username)
        self.since = since
        self.repos = repos

    @property
    def list_type(self) -> ListType:
        return ListType.NOTIFICATIONS

    def query(self) -> ListQuery:
        return ListQuery(since=self.since)

    def fetch(self, cancel: Optional[CancelToken]) -> List[Item]:
        return self.api.list_unread_notifications(self.since, repos=self.repos, cancel=cancel)

    def get(self, cancel: Optional[CancelToken] = None) -> SourceResult:
        entry = self.cache_read()

        if self.monitor.is_limited():
            if entry is not None:
                self.logger.info("Rate limited; serving %d cached notification(s)", len(entry.items))
                return SourceResult(items=list(entry.items), from_cache=True)
            self.monitor.check()

        if entry is None:
            items = self.fetch(cancel)
            self.cache_write(items)
            return SourceResult(items=items, from_cache=False, new_count=len(items))

        fetch_started = self.monitor.now()
        try:
            fresh = self.api.list_unread_notifications(entry.last_fetch_time, repos=self.repos, cancel=cancel)
        except (RateLimitedError, GitHubAPIError) as e:
            self.logger.info("Incremental notifications fetch failed (%s); using cache", e)
            return SourceResult(items=list(entry.items), from_cache=True)

        merged = merge_notifications(entry.items, fresh, self.since)
        self._write_merged(merged, entry.cached_at, fetch_started)
        self.logger.debug("notifications: %d cached + %d new -> %d", len(entry.items), len(fresh), len(merged))
        return SourceResult(items=merged, from_cache=True, new_count=len(fresh))

    def _write_merged(self, items: List[Item], cached_at: datetime, fetched_at: datetime) -> None:
        if self.cache is None:
            return
        entry = ListCacheEntry(
            items=items,
            cached_at=cached_at,
            last_fetch_time=fetched_at,
            since_time=self.since,
        )
        try:
            self.cache.set_list(self.username, self.list_type, entry, touch=False)
        except OSError as e:
            self.logger.debug("Failed to cache merged notifications: %s", e)
