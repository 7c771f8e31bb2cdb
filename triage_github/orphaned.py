# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Orphaned contribution detection.

An open issue/PR by a non-team author is "orphaned" when either:
- nobody from the team (MEMBER/OWNER/COLLABORATOR) has commented/reviewed for
  `stale_days` (falls back to the item's updated_at if the team never responded), or
- the author has posted `consecutive_author_comments` comments in a row at the end of
  the thread with no team reply in between.

Resource:
    One GraphQL query per monitored repo (open issues + open PRs, most recently updated
    first, last 10 comments, PR reviews). Repos are scanned concurrently.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from triage_common import DEFAULT_ORPHANED_WORKERS, parse_iso8601, utcnow
from triage_types import ItemReason, ItemType, ReviewState, SubjectType, is_team_member

from .errors import RateLimitedError
from .graphql import map_ci_status
from .item_types import IssueDetails, Item, PRDetails, Repository, Subject, split_repo_name
from .task_group import CancelledError, CancelToken

if TYPE_CHECKING:  # pragma: no cover
    from . import GitHubAPIClient

_logger = logging.getLogger(__name__)


@dataclass
class OrphanedSearchOptions:
    repos: List[str] = field(default_factory=list)
    since: Optional[datetime] = None
    stale_days: int = 7
    consecutive_author_comments: int = 2
    max_items_per_repo: int = 50


@dataclass
class CommentActivity:
    author: str
    author_association: str
    created_at: Optional[datetime]


def build_orphaned_query(owner: str, repo: str, limit: int) -> str:
    n = max(1, min(int(limit), 100))
    return f"""query {{
  repository(owner: {json.dumps(owner)}, name: {json.dumps(repo)}) {{
    issues(states: OPEN, first: {n}, orderBy: {{field: UPDATED_AT, direction: DESC}}) {{
      nodes {{
        number
        title
        url
        createdAt
        updatedAt
        authorAssociation
        author {{ login }}
        assignees(first: 10) {{ nodes {{ login }} }}
        labels(first: 20) {{ nodes {{ name }} }}
        comments(last: 10) {{ totalCount nodes {{ author {{ login }} authorAssociation createdAt }} }}
      }}
    }}
    pullRequests(states: OPEN, first: {n}, orderBy: {{field: UPDATED_AT, direction: DESC}}) {{
      nodes {{
        number
        title
        url
        createdAt
        updatedAt
        authorAssociation
        isDraft
        additions
        deletions
        changedFiles
        reviewDecision
        author {{ login }}
        assignees(first: 10) {{ nodes {{ login }} }}
        labels(first: 20) {{ nodes {{ name }} }}
        commits(last: 1) {{ nodes {{ commit {{ statusCheckRollup {{ state }} }} }} }}
        comments(last: 10) {{ totalCount nodes {{ author {{ login }} authorAssociation createdAt }} }}
        reviews(last: 10) {{ nodes {{ author {{ login }} authorAssociation state submittedAt }} }}
      }}
    }}
  }}
}}"""


# ======================================================================================
# Analysis helpers (pure)
# ======================================================================================


def _activity(nodes: Any, ts_field: str) -> List[CommentActivity]:
    out: List[CommentActivity] = []
    raw = nodes.get("nodes") if isinstance(nodes, dict) else None
    for n in raw or []:
        if not isinstance(n, dict):
            continue
        out.append(
            CommentActivity(
                author=str((n.get("author") or {}).get("login") or ""),
                author_association=str(n.get("authorAssociation") or ""),
                created_at=parse_iso8601(n.get(ts_field)),
            )
        )
    return out


def analyze_comments(comments: Sequence[CommentActivity], item_author: str) -> Tuple[Optional[datetime], int]:
    """Return (latest team comment time, consecutive trailing comments by the item author).

    Comments are oldest-first. The consecutive count stops at the first non-author comment
    walking back from the newest one.
    """
    last_team: Optional[datetime] = None
    consecutive = 0
    counting = True
    for c in reversed(comments):
        if is_team_member(c.author_association):
            if c.created_at is not None and (last_team is None or c.created_at > last_team):
                last_team = c.created_at
            counting = False
        elif counting and c.author == item_author:
            consecutive += 1
        else:
            counting = False
    return last_team, consecutive


def analyze_reviews(reviews: Sequence[CommentActivity]) -> Optional[datetime]:
    """Latest submitted review by a team member, if any."""
    latest: Optional[datetime] = None
    for r in reviews:
        if is_team_member(r.author_association) and r.created_at is not None:
            if latest is None or r.created_at > latest:
                latest = r.created_at
    return latest


def determine_review_state(review_decision: Optional[str], review_states: Sequence[str]) -> str:
    d = str(review_decision or "").upper()
    if d == "APPROVED":
        return ReviewState.APPROVED.value
    if d == "CHANGES_REQUESTED":
        return ReviewState.CHANGES_REQUESTED.value
    if review_states:
        last = str(review_states[-1] or "").upper()
        if last == "APPROVED":
            return ReviewState.APPROVED.value
        if last == "CHANGES_REQUESTED":
            return ReviewState.CHANGES_REQUESTED.value
        if last in ("COMMENTED", "PENDING"):
            return ReviewState.REVIEWED.value
    return ReviewState.PENDING.value


def is_orphaned(
    *,
    updated_at: datetime,
    last_team_activity: Optional[datetime],
    consecutive_author_comments: int,
    opts: OrphanedSearchOptions,
    now: datetime,
) -> bool:
    reference = last_team_activity or updated_at
    if now - reference >= timedelta(days=int(opts.stale_days)):
        return True
    return consecutive_author_comments >= int(opts.consecutive_author_comments)


# ======================================================================================
# Fetch
# ======================================================================================


def _common_fields(node: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "number": int(node.get("number") or 0),
        "state": "open",
        "html_url": str(node.get("url") or ""),
        "created_at": parse_iso8601(node.get("createdAt")),
        "updated_at": parse_iso8601(node.get("updatedAt")),
        "author": str((node.get("author") or {}).get("login") or ""),
        "assignees": [str(a.get("login")) for a in (node.get("assignees") or {}).get("nodes") or [] if a and a.get("login")],
        "labels": [str(lb.get("name")) for lb in (node.get("labels") or {}).get("nodes") or [] if lb and lb.get("name")],
        "comment_count": int((node.get("comments") or {}).get("totalCount") or 0),
    }


def items_from_repo_response(
    full_name: str, data: Dict[str, Any], opts: OrphanedSearchOptions, now: datetime
) -> List[Item]:
    """Turn one repo's GraphQL response into orphaned Items (team-authored items skipped).

    Items come back most recently updated first, matching the query's UPDATED_AT DESC order,
    so the max_items_per_repo cap drops the oldest ones.
    """
    repo_obj = (data or {}).get("repository") or {}
    out: List[Item] = []

    for kind in ("pullRequests", "issues"):
        is_pr = kind == "pullRequests"
        for node in (repo_obj.get(kind) or {}).get("nodes") or []:
            if not isinstance(node, dict):
                continue
            association = str(node.get("authorAssociation") or "")
            if is_team_member(association):
                continue
            common = _common_fields(node)
            updated_at = common["updated_at"]
            if updated_at is None or not common["number"]:
                continue

            comments = _activity(node.get("comments"), "createdAt")
            last_team, consecutive = analyze_comments(comments, common["author"])
            reviews: List[CommentActivity] = []
            review_states: List[str] = []
            if is_pr:
                reviews = _activity(node.get("reviews"), "submittedAt")
                review_states = [str(r.get("state") or "") for r in (node.get("reviews") or {}).get("nodes") or [] if r]
                last_review = analyze_reviews(reviews)
                if last_review is not None and (last_team is None or last_review > last_team):
                    last_team = last_review

            if not is_orphaned(
                updated_at=updated_at,
                last_team_activity=last_team,
                consecutive_author_comments=consecutive,
                opts=opts,
                now=now,
            ):
                continue

            if is_pr:
                commit_nodes = (node.get("commits") or {}).get("nodes") or []
                rollup = ((commit_nodes[0] or {}).get("commit") or {}).get("statusCheckRollup") if commit_nodes else None
                details: Any = PRDetails(
                    **common,
                    additions=int(node.get("additions") or 0),
                    deletions=int(node.get("deletions") or 0),
                    changed_files=int(node.get("changedFiles") or 0),
                    draft=bool(node.get("isDraft", False)),
                    review_state=determine_review_state(node.get("reviewDecision"), review_states),
                    ci_status=map_ci_status((rollup or {}).get("state")),
                )
                subject_type, item_type, api_kind = SubjectType.PULL_REQUEST, ItemType.PULL_REQUEST, "pulls"
            else:
                details = IssueDetails(
                    **common,
                    last_commenter=comments[-1].author if comments else "",
                )
                subject_type, item_type, api_kind = SubjectType.ISSUE, ItemType.ISSUE, "issues"

            number = common["number"]
            out.append(
                Item(
                    id=f"orphaned-{full_name}-{number}",
                    reason=ItemReason.ORPHANED.value,
                    unread=True,
                    updated_at=updated_at,
                    repository=Repository(
                        full_name=full_name,
                        name=full_name.split("/", 1)[-1],
                        html_url=f"https://github.com/{full_name}",
                    ),
                    subject=Subject(
                        title=str(node.get("title") or ""),
                        url=f"https://api.github.com/repos/{full_name}/{api_kind}/{number}",
                        type=subject_type.value,
                    ),
                    type=item_type.value,
                    number=number,
                    state="open",
                    html_url=common["html_url"],
                    created_at=common["created_at"],
                    author=common["author"],
                    assignees=common["assignees"],
                    labels=common["labels"],
                    comment_count=common["comment_count"],
                    author_association=association,
                    last_team_activity_at=last_team,
                    consecutive_author_comments=consecutive,
                    details=details,
                )
            )

    out.sort(key=lambda it: it.updated_at, reverse=True)
    return out[: max(0, int(opts.max_items_per_repo))]


def list_orphaned_contributions(
    client: "GitHubAPIClient",
    opts: OrphanedSearchOptions,
    *,
    cancel: Optional[CancelToken] = None,
    max_workers: int = DEFAULT_ORPHANED_WORKERS,
) -> List[Item]:
    """Scan every repo in opts.repos concurrently.

    Raises:
        InvalidRepositoryError: any repo name is malformed (checked before any request).
        RateLimitedError: at least one repo hit the rate limit.
    """
    targets = [(full, split_repo_name(full)) for full in opts.repos]
    if not targets:
        return []
    now = utcnow()

    def _one(full_name: str, owner: str, name: str) -> List[Item]:
        if cancel is not None:
            cancel.raise_if_cancelled()
        data = client.graphql(build_orphaned_query(owner, name, opts.max_items_per_repo), cancel=cancel)
        return items_from_repo_response(full_name, data, opts, now)

    results: List[Item] = []
    rate_limited: Optional[RateLimitedError] = None
    with ThreadPoolExecutor(max_workers=max(1, min(int(max_workers), len(targets)))) as pool:
        futures = {pool.submit(_one, full, owner, name): full for (full, (owner, name)) in targets}
        for fut in as_completed(futures):
            full = futures[fut]
            try:
                results.extend(fut.result())
            except RateLimitedError as e:
                rate_limited = rate_limited or e
            except CancelledError:
                raise
            except Exception as e:
                _logger.warning("Orphaned scan failed for %s: %s", full, e)

    if rate_limited is not None:
        raise rate_limited
    _logger.debug("Found %d orphaned contribution(s) across %d repo(s)", len(results), len(targets))
    return results
