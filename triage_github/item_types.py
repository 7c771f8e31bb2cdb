# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Item / Details dataclasses and their JSON (cache) form.

Details is a tagged union: PRDetails | IssueDetails, discriminated by the `kind` field in
its dict form. Every place that consumes Details goes through `details_to_dict`,
`details_from_dict` or `attach_details`, which dispatch on the concrete class and raise
TypeError on anything else.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from triage_common import format_iso8601, parse_iso8601
from triage_types import ItemType, SubjectType

from .errors import InvalidRepositoryError

_REPO_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")


def split_repo_name(full_name: str) -> Tuple[str, str]:
    """'owner/name' -> ('owner', 'name'); raises InvalidRepositoryError otherwise."""
    s = str(full_name or "").strip()
    if not _REPO_NAME_RE.match(s):
        raise InvalidRepositoryError(f"invalid repository name: {full_name!r} (expected owner/name)")
    owner, name = s.split("/", 1)
    return owner, name


def number_from_url(url: str) -> int:
    """Issue/PR number from the last path segment of an API or HTML URL (0 if none)."""
    tail = str(url or "").rstrip("/").rsplit("/", 1)[-1]
    try:
        n = int(tail)
    except ValueError:
        return 0
    return n if n > 0 else 0


def _ts(value: Optional[datetime]) -> Optional[str]:
    return format_iso8601(value)


# ======================================================================================
# Repository / Subject
# ======================================================================================


@dataclass
class Repository:
    full_name: str = ""
    name: str = ""
    id: int = 0
    private: bool = False
    html_url: str = ""

    def owner_and_name(self) -> Tuple[str, str]:
        return split_repo_name(self.full_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "full_name": self.full_name,
            "private": self.private,
            "html_url": self.html_url,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Repository":
        full_name = str(d.get("full_name") or "")
        return cls(
            full_name=full_name,
            name=str(d.get("name") or full_name.rsplit("/", 1)[-1]),
            id=int(d.get("id") or 0),
            private=bool(d.get("private", False)),
            html_url=str(d.get("html_url") or ""),
        )


@dataclass
class Subject:
    title: str = ""
    url: str = ""
    type: str = ""  # SubjectType value

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "url": self.url, "type": self.type}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Subject":
        return cls(title=str(d.get("title") or ""), url=str(d.get("url") or ""), type=str(d.get("type") or ""))


# ======================================================================================
# Details (tagged union)
# ======================================================================================


@dataclass
class _DetailsCommon:
    """Fields shared by both variants; attach_details() copies these onto the Item."""

    number: int = 0
    state: str = ""
    html_url: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    author: str = ""
    assignees: List[str] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    comment_count: int = 0

    def _common_dict(self) -> Dict[str, Any]:
        return {
            "number": self.number,
            "state": self.state,
            "html_url": self.html_url,
            "created_at": _ts(self.created_at),
            "updated_at": _ts(self.updated_at),
            "closed_at": _ts(self.closed_at),
            "author": self.author,
            "assignees": list(self.assignees),
            "labels": list(self.labels),
            "comment_count": self.comment_count,
        }

    @staticmethod
    def _common_kwargs(d: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "number": int(d.get("number") or 0),
            "state": str(d.get("state") or ""),
            "html_url": str(d.get("html_url") or ""),
            "created_at": parse_iso8601(d.get("created_at")),
            "updated_at": parse_iso8601(d.get("updated_at")),
            "closed_at": parse_iso8601(d.get("closed_at")),
            "author": str(d.get("author") or ""),
            "assignees": [str(x) for x in (d.get("assignees") or [])],
            "labels": [str(x) for x in (d.get("labels") or [])],
            "comment_count": int(d.get("comment_count") or 0),
        }


@dataclass
class PRDetails(_DetailsCommon):
    kind = "pr"

    merged: bool = False
    merged_at: Optional[datetime] = None
    additions: int = 0
    deletions: int = 0
    changed_files: int = 0
    review_state: str = ""  # ReviewState value
    review_comments: int = 0
    mergeable: bool = False
    ci_status: str = ""  # CIStatus value
    draft: bool = False
    requested_reviewers: List[str] = field(default_factory=list)
    latest_reviewer: str = ""


@dataclass
class IssueDetails(_DetailsCommon):
    kind = "issue"

    last_commenter: str = ""


Details = Union[PRDetails, IssueDetails]


def details_to_dict(details: Details) -> Dict[str, Any]:
    if isinstance(details, PRDetails):
        d = details._common_dict()
        d.update(
            {
                "kind": PRDetails.kind,
                "merged": details.merged,
                "merged_at": _ts(details.merged_at),
                "additions": details.additions,
                "deletions": details.deletions,
                "changed_files": details.changed_files,
                "review_state": details.review_state,
                "review_comments": details.review_comments,
                "mergeable": details.mergeable,
                "ci_status": details.ci_status,
                "draft": details.draft,
                "requested_reviewers": list(details.requested_reviewers),
                "latest_reviewer": details.latest_reviewer,
            }
        )
        return d
    if isinstance(details, IssueDetails):
        d = details._common_dict()
        d.update({"kind": IssueDetails.kind, "last_commenter": details.last_commenter})
        return d
    raise TypeError(f"unknown details variant: {type(details).__name__}")


def details_from_dict(d: Dict[str, Any]) -> Details:
    """Inverse of details_to_dict. Raises ValueError on an unknown/missing kind."""
    kind = d.get("kind")
    common = _DetailsCommon._common_kwargs(d)
    if kind == PRDetails.kind:
        return PRDetails(
            **common,
            merged=bool(d.get("merged", False)),
            merged_at=parse_iso8601(d.get("merged_at")),
            additions=int(d.get("additions") or 0),
            deletions=int(d.get("deletions") or 0),
            changed_files=int(d.get("changed_files") or 0),
            review_state=str(d.get("review_state") or ""),
            review_comments=int(d.get("review_comments") or 0),
            mergeable=bool(d.get("mergeable", False)),
            ci_status=str(d.get("ci_status") or ""),
            draft=bool(d.get("draft", False)),
            requested_reviewers=[str(x) for x in (d.get("requested_reviewers") or [])],
            latest_reviewer=str(d.get("latest_reviewer") or ""),
        )
    if kind == IssueDetails.kind:
        return IssueDetails(**common, last_commenter=str(d.get("last_commenter") or ""))
    raise ValueError(f"unknown details kind: {kind!r}")


# ======================================================================================
# Item
# ======================================================================================


@dataclass
class Item:
    id: str
    reason: str  # ItemReason value
    updated_at: datetime
    repository: Repository
    subject: Subject
    unread: bool = False
    url: str = ""
    type: str = ""  # ItemType value
    number: int = 0
    state: str = ""
    html_url: str = ""
    created_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    author: str = ""
    assignees: List[str] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    comment_count: int = 0

    # Orphaned-contribution analysis
    author_association: str = ""
    last_team_activity_at: Optional[datetime] = None
    consecutive_author_comments: int = 0

    details: Optional[Details] = None

    @property
    def is_pr(self) -> bool:
        return self.subject.type == SubjectType.PULL_REQUEST.value

    def subject_number(self) -> int:
        return self.number or number_from_url(self.subject.url)

    def identity_key(self) -> str:
        """repo#kind#number once the subject URL parses; exact subject URL otherwise."""
        number = self.subject_number()
        if number and self.repository.full_name and self.subject.type:
            return f"{self.repository.full_name.lower()}#{self.subject.type}#{number}"
        return f"url:{self.subject.url}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reason": self.reason,
            "unread": self.unread,
            "updated_at": _ts(self.updated_at),
            "repository": self.repository.to_dict(),
            "subject": self.subject.to_dict(),
            "url": self.url,
            "type": self.type,
            "number": self.number,
            "state": self.state,
            "html_url": self.html_url,
            "created_at": _ts(self.created_at),
            "closed_at": _ts(self.closed_at),
            "author": self.author,
            "assignees": list(self.assignees),
            "labels": list(self.labels),
            "comment_count": self.comment_count,
            "author_association": self.author_association,
            "last_team_activity_at": _ts(self.last_team_activity_at),
            "consecutive_author_comments": self.consecutive_author_comments,
            "details": details_to_dict(self.details) if self.details is not None else None,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Item":
        updated_at = parse_iso8601(d.get("updated_at"))
        if updated_at is None:
            raise ValueError(f"item {d.get('id')!r}: missing updated_at")
        raw_details = d.get("details")
        return cls(
            id=str(d.get("id") or ""),
            reason=str(d.get("reason") or ""),
            unread=bool(d.get("unread", False)),
            updated_at=updated_at,
            repository=Repository.from_dict(d.get("repository") or {}),
            subject=Subject.from_dict(d.get("subject") or {}),
            url=str(d.get("url") or ""),
            type=str(d.get("type") or ""),
            number=int(d.get("number") or 0),
            state=str(d.get("state") or ""),
            html_url=str(d.get("html_url") or ""),
            created_at=parse_iso8601(d.get("created_at")),
            closed_at=parse_iso8601(d.get("closed_at")),
            author=str(d.get("author") or ""),
            assignees=[str(x) for x in (d.get("assignees") or [])],
            labels=[str(x) for x in (d.get("labels") or [])],
            comment_count=int(d.get("comment_count") or 0),
            author_association=str(d.get("author_association") or ""),
            last_team_activity_at=parse_iso8601(d.get("last_team_activity_at")),
            consecutive_author_comments=int(d.get("consecutive_author_comments") or 0),
            details=details_from_dict(raw_details) if isinstance(raw_details, dict) else None,
        )


def attach_details(item: Item, details: Details) -> None:
    """Attach enrichment to an item and promote the shared fields onto it."""
    if isinstance(details, PRDetails):
        item.type = ItemType.PULL_REQUEST.value
    elif isinstance(details, IssueDetails):
        item.type = ItemType.ISSUE.value
    else:
        raise TypeError(f"unknown details variant: {type(details).__name__}")

    item.details = details
    if details.number:
        item.number = details.number
    item.state = details.state or item.state
    item.html_url = details.html_url or item.html_url
    item.created_at = details.created_at or item.created_at
    item.closed_at = details.closed_at
    item.author = details.author or item.author
    item.assignees = list(details.assignees)
    item.labels = list(details.labels)
    item.comment_count = details.comment_count
