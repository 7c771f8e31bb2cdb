"""Base class for cached item-list sources.

Goal: make each item source readable + debuggable by enforcing a small interface:
- list type (cache key + TTL policy come from it)
- what window/repos the caller is asking for
- the actual API fetch implementation
- shared cache-or-fetch flow with rate limit degradation
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from triage_cache.cache_entries import ListCacheEntry, ListQuery
from triage_cache.cache_items import ItemCache
from triage_types import ListType

from ..item_types import Item
from ..ratelimit import RateLimitMonitor
from ..task_group import CancelToken

if TYPE_CHECKING:  # pragma: no cover
    from .. import GitHubAPIClient


@dataclass
class SourceResult:
    """Items returned by one source, plus where they came from."""

    items: List[Item] = field(default_factory=list)
    from_cache: bool = False
    # Only meaningful for unread notifications: items fetched fresh this call.
    new_count: int = 0


class CachedListSource(ABC):
    """One logical item source backed by a list cache entry.

    Subclasses define:
    - list_type
    - query() describing the requested window/repos (used for validity checks)
    - fetch() doing the network call(s)
    """

    def __init__(
        self,
        api: "GitHubAPIClient",
        cache: Optional[ItemCache],
        monitor: RateLimitMonitor,
        username: str,
    ):
        self.api = api
        self.cache = cache
        self.monitor = monitor
        self.username = username
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    @abstractmethod
    def list_type(self) -> ListType:
        """Cache list kind for this source."""

    @abstractmethod
    def fetch(self, cancel: Optional[CancelToken]) -> List[Item]:
        """Fetch the full list from the network."""

    def query(self) -> ListQuery:
        return ListQuery()

    def cache_read(self) -> Optional[ListCacheEntry]:
        if self.cache is None:
            return None
        return self.cache.get_list(self.username, self.list_type, self.query())

    def cache_write(self, items: List[Item]) -> None:
        """Best-effort list write; a failed write only costs a refetch next time."""
        if self.cache is None:
            return
        q = self.query()
        entry = ListCacheEntry(
            items=items,
            cached_at=self.monitor.now(),
            last_fetch_time=self.monitor.now(),
            since_time=q.since,
            repos=list(q.repos) if q.repos is not None else None,
        )
        try:
            self.cache.set_list(self.username, self.list_type, entry)
        except OSError as e:
            self.logger.debug("Failed to cache %s list: %s", self.list_type.value, e)

    def get(self, cancel: Optional[CancelToken] = None) -> SourceResult:
        """Shared get() flow: valid cache entry -> return; limited -> raise; else fetch + write.

        Raises:
            RateLimitedError: no usable cache entry and the monitor is limited (or becomes
                limited during the fetch).
        """
        entry = self.cache_read()
        if entry is not None:
            self.logger.debug("%s: %d item(s) from cache", self.list_type.value, len(entry.items))
            return SourceResult(items=list(entry.items), from_cache=True)

        self.monitor.check()
        items = self.fetch(cancel)
        self.cache_write(items)
        return SourceResult(items=items, from_cache=False, new_count=len(items))
