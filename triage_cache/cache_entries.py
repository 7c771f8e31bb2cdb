# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Cache entry records and keys.

On-disk JSON shapes:

Detail entry (detail_<owner>_<repo>_<SubjectType>_<number>.json):
    {"version": 3, "cached_at": "...Z", "updated_at": "...Z", "details": {"kind": "pr", ...}}

List entry (list_<list-type>_<username>.json):
    {"version": 3, "cached_at": "...Z", "last_fetch_time": "...Z",
     "since_time": "...Z" | null, "repos": ["owner/repo", ...] | null, "items": [...]}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from triage_common import format_iso8601, parse_iso8601
from triage_github.item_types import Details, Item, details_from_dict, details_to_dict
from triage_types import ListType

DETAIL_FILE_PREFIX = "detail_"
LIST_FILE_PREFIX = "list_"


def _safe(part: str) -> str:
    return str(part).replace("/", "_").replace("\\", "_")


@dataclass(frozen=True)
class CacheKey:
    """Detail entry key: (repo full name, subject type, number)."""

    repo: str
    subject_type: str
    number: int

    def filename(self) -> str:
        return f"{DETAIL_FILE_PREFIX}{_safe(self.repo)}_{_safe(self.subject_type)}_{int(self.number)}.json"


def list_filename(username: str, list_type: ListType) -> str:
    return f"{LIST_FILE_PREFIX}{ListType(list_type).value}_{_safe(username)}.json"


def _required_ts(d: Dict[str, Any], name: str) -> datetime:
    ts = parse_iso8601(d.get(name))
    if ts is None:
        raise ValueError(f"cache entry missing {name}")
    return ts


@dataclass
class DetailCacheEntry:
    details: Details
    cached_at: datetime
    updated_at: datetime
    version: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "cached_at": format_iso8601(self.cached_at),
            "updated_at": format_iso8601(self.updated_at),
            "details": details_to_dict(self.details),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetailCacheEntry":
        raw = d.get("details")
        if not isinstance(raw, dict):
            raise ValueError("detail cache entry has no details")
        return cls(
            details=details_from_dict(raw),
            cached_at=_required_ts(d, "cached_at"),
            updated_at=_required_ts(d, "updated_at"),
            version=int(d.get("version") or 0),
        )


@dataclass
class ListQuery:
    """What the caller is asking a cached list to cover."""

    since: Optional[datetime] = None
    repos: Optional[List[str]] = None


@dataclass
class ListCacheEntry:
    items: List[Item]
    cached_at: datetime
    last_fetch_time: datetime
    since_time: Optional[datetime] = None
    repos: Optional[List[str]] = None
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "cached_at": format_iso8601(self.cached_at),
            "last_fetch_time": format_iso8601(self.last_fetch_time),
            "since_time": format_iso8601(self.since_time),
            "repos": list(self.repos) if self.repos is not None else None,
            "items": [it.to_dict() for it in self.items],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ListCacheEntry":
        raw_items = d.get("items") or []
        if not isinstance(raw_items, list):
            raise ValueError("list cache entry items is not a list")
        repos = d.get("repos")
        return cls(
            items=[Item.from_dict(x) for x in raw_items if isinstance(x, dict)],
            cached_at=_required_ts(d, "cached_at"),
            last_fetch_time=_required_ts(d, "last_fetch_time"),
            since_time=parse_iso8601(d.get("since_time")),
            repos=[str(r) for r in repos] if isinstance(repos, list) else None,
            version=int(d.get("version") or 0),
        )


@dataclass
class CategoryStats:
    total: int = 0
    valid: int = 0

    @property
    def expired(self) -> int:
        return self.total - self.valid


@dataclass
class CacheStats:
    """Per-category (total, valid) counts from a directory scan."""

    detail: CategoryStats = field(default_factory=CategoryStats)
    lists: Dict[ListType, CategoryStats] = field(default_factory=lambda: {lt: CategoryStats() for lt in ListType})

    @property
    def total(self) -> int:
        return self.detail.total + sum(s.total for s in self.lists.values())

    @property
    def valid(self) -> int:
        return self.detail.valid + sum(s.valid for s in self.lists.values())
