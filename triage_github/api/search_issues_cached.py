"""Search-backed item lists (review-requested, authored, assigned issues, assigned PRs).

Resource:
    GET /search/issues?q=<query>&sort=updated&order=desc&per_page=100 (paginated)

Cache:
    list_<list-type>_<username>.json

TTL:
    5m (ITEM_LIST_TTL_S). No window: these lists are "everything currently open".
"""

from __future__ import annotations

from typing import List, Optional

from triage_types import ListType

from ..item_types import Item
from ..task_group import CancelToken
from .base_cached import CachedListSource


class SearchListSource(CachedListSource):
    """One of the four search-backed lists, chosen by `kind`."""

    SUPPORTED = (
        ListType.REVIEW_REQUESTED,
        ListType.AUTHORED,
        ListType.ASSIGNED_ISSUES,
        ListType.ASSIGNED_PRS,
    )

    def __init__(self, api, cache, monitor, username: str, *, kind: ListType):
        super().__init__(api, cache, monitor, username)
        kind = ListType(kind)
        if kind not in self.SUPPORTED:
            raise ValueError(f"not a search-backed list: {kind.value}")
        self._kind = kind

    @property
    def list_type(self) -> ListType:
        return self._kind

    def fetch(self, cancel: Optional[CancelToken]) -> List[Item]:
        if self._kind == ListType.REVIEW_REQUESTED:
            return self.api.list_review_requested_prs(self.username, cancel=cancel)
        if self._kind == ListType.AUTHORED:
            return self.api.list_authored_prs(self.username, cancel=cancel)
        if self._kind == ListType.ASSIGNED_ISSUES:
            return self.api.list_assigned_issues(self.username, cancel=cancel)
        return self.api.list_assigned_prs(self.username, cancel=cancel)
