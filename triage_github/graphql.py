# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Batched GraphQL enrichment queries.

One document per batch and kind, every item aliased:

    query {
      pr0: repository(owner: "octo", name: "hello") {
        pullRequest(number: 42) { ...fields }
      }
      pr1: repository(owner: "octo", name: "world") {
        pullRequest(number: 7) { ...fields }
      }
    }

PRs and issues have different field sets, so a mixed batch becomes two documents
(run in parallel by the enricher). Missing/null aliases (deleted items, no access) are
simply absent from the parsed result.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from triage_common import parse_iso8601
from triage_types import CIStatus, ReviewState

from .item_types import IssueDetails, PRDetails

_logger = logging.getLogger(__name__)

PR_FIELDS = """
      number
      state
      url
      additions
      deletions
      changedFiles
      isDraft
      mergeable
      createdAt
      updatedAt
      closedAt
      mergedAt
      author { login }
      assignees(first: 10) { nodes { login } }
      labels(first: 20) { nodes { name } }
      reviewDecision
      reviewRequests(first: 10) {
        nodes { requestedReviewer { ... on User { login } ... on Team { name } } }
      }
      latestReviews(first: 10) { nodes { author { login } state submittedAt } }
      commits(last: 1) { nodes { commit { statusCheckRollup { state } } } }
      comments { totalCount }
      reviewThreads { totalCount }
"""

ISSUE_FIELDS = """
      number
      state
      url
      createdAt
      updatedAt
      closedAt
      author { login }
      assignees(first: 10) { nodes { login } }
      labels(first: 20) { nodes { name } }
      comments(last: 1) { totalCount nodes { author { login } } }
"""


@dataclass(frozen=True)
class EnrichmentTarget:
    """One aliased lookup: `index` ties the parsed result back to the caller's item."""

    index: int
    owner: str
    repo: str
    number: int


def _gql_string(value: str) -> str:
    # JSON string escaping is valid GraphQL string escaping.
    return json.dumps(str(value))


def _build_batch_query(targets: Sequence[EnrichmentTarget], alias_prefix: str, field: str, fields: str) -> str:
    if not targets:
        return ""
    parts = ["query {"]
    for i, t in enumerate(targets):
        parts.append(
            f"  {alias_prefix}{i}: repository(owner: {_gql_string(t.owner)}, name: {_gql_string(t.repo)}) {{\n"
            f"    {field}(number: {int(t.number)}) {{{fields}    }}\n"
            f"  }}"
        )
    parts.append("}")
    return "\n".join(parts)


def build_pr_batch_query(targets: Sequence[EnrichmentTarget]) -> str:
    """Aliased PR query (`pr{i}`); empty string for no targets."""
    return _build_batch_query(targets, "pr", "pullRequest", PR_FIELDS)


def build_issue_batch_query(targets: Sequence[EnrichmentTarget]) -> str:
    """Aliased issue query (`issue{i}`); empty string for no targets."""
    return _build_batch_query(targets, "issue", "issue", ISSUE_FIELDS)


# ======================================================================================
# Response mapping
# ======================================================================================


def map_review_decision(decision: Optional[str]) -> str:
    d = str(decision or "").upper()
    if d == "APPROVED":
        return ReviewState.APPROVED.value
    if d == "CHANGES_REQUESTED":
        return ReviewState.CHANGES_REQUESTED.value
    return ReviewState.PENDING.value


def map_ci_status(rollup_state: Optional[str]) -> str:
    s = str(rollup_state or "").upper()
    if s == "SUCCESS":
        return CIStatus.SUCCESS.value
    if s in ("FAILURE", "ERROR"):
        return CIStatus.FAILURE.value
    if s == "PENDING":
        return CIStatus.PENDING.value
    return CIStatus.UNKNOWN.value


def _nodes(obj: Any) -> List[Dict[str, Any]]:
    if not isinstance(obj, dict):
        return []
    return [n for n in (obj.get("nodes") or []) if isinstance(n, dict)]


def _login(obj: Any) -> str:
    return str((obj or {}).get("login") or "") if isinstance(obj, dict) else ""


def _total_count(obj: Any) -> int:
    if not isinstance(obj, dict):
        return 0
    try:
        return int(obj.get("totalCount") or 0)
    except (ValueError, TypeError):
        return 0


def _ci_from_commits(commits: Any) -> str:
    for node in _nodes(commits):
        rollup = ((node.get("commit") or {}).get("statusCheckRollup") or {})
        return map_ci_status(rollup.get("state"))
    return CIStatus.UNKNOWN.value


def _latest_reviewer(latest_reviews: Any) -> str:
    best_login = ""
    best_at: Optional[datetime] = None
    for r in _nodes(latest_reviews):
        at = parse_iso8601(r.get("submittedAt"))
        if at is None:
            continue
        if best_at is None or at > best_at:
            best_at = at
            best_login = _login(r.get("author"))
    return best_login


def _requested_reviewers(review_requests: Any) -> List[str]:
    out: List[str] = []
    for node in _nodes(review_requests):
        rr = node.get("requestedReviewer") or {}
        name = rr.get("login") or rr.get("name")
        if name:
            out.append(str(name))
    return out


def pr_details_from_node(pr: Dict[str, Any]) -> PRDetails:
    merged_at = parse_iso8601(pr.get("mergedAt"))
    state = str(pr.get("state") or "").lower()
    if merged_at is not None:
        state = "merged"
    return PRDetails(
        number=int(pr.get("number") or 0),
        state=state,
        html_url=str(pr.get("url") or ""),
        created_at=parse_iso8601(pr.get("createdAt")),
        updated_at=parse_iso8601(pr.get("updatedAt")),
        closed_at=parse_iso8601(pr.get("closedAt")),
        author=_login(pr.get("author")),
        assignees=[_login(n) for n in _nodes(pr.get("assignees")) if _login(n)],
        labels=[str(n.get("name")) for n in _nodes(pr.get("labels")) if n.get("name")],
        comment_count=_total_count(pr.get("comments")) + _total_count(pr.get("reviewThreads")),
        merged=merged_at is not None,
        merged_at=merged_at,
        additions=int(pr.get("additions") or 0),
        deletions=int(pr.get("deletions") or 0),
        changed_files=int(pr.get("changedFiles") or 0),
        review_state=map_review_decision(pr.get("reviewDecision")),
        review_comments=_total_count(pr.get("reviewThreads")),
        mergeable=str(pr.get("mergeable") or "") == "MERGEABLE",
        ci_status=_ci_from_commits(pr.get("commits")),
        draft=bool(pr.get("isDraft", False)),
        requested_reviewers=_requested_reviewers(pr.get("reviewRequests")),
        latest_reviewer=_latest_reviewer(pr.get("latestReviews")),
    )


def issue_details_from_node(issue: Dict[str, Any]) -> IssueDetails:
    comments = issue.get("comments")
    last = _nodes(comments)
    return IssueDetails(
        number=int(issue.get("number") or 0),
        state=str(issue.get("state") or "").lower(),
        html_url=str(issue.get("url") or ""),
        created_at=parse_iso8601(issue.get("createdAt")),
        updated_at=parse_iso8601(issue.get("updatedAt")),
        closed_at=parse_iso8601(issue.get("closedAt")),
        author=_login(issue.get("author")),
        assignees=[_login(n) for n in _nodes(issue.get("assignees")) if _login(n)],
        labels=[str(n.get("name")) for n in _nodes(issue.get("labels")) if n.get("name")],
        comment_count=_total_count(comments),
        last_commenter=_login(last[-1].get("author")) if last else "",
    )


def _parse_aliased(data: Dict[str, Any], targets: Sequence[EnrichmentTarget], alias_prefix: str, field: str, build) -> Dict[int, Any]:
    out: Dict[int, Any] = {}
    for i, t in enumerate(targets):
        repo_obj = data.get(f"{alias_prefix}{i}")
        if not isinstance(repo_obj, dict):
            continue
        node = repo_obj.get(field)
        if not isinstance(node, dict):
            continue
        try:
            out[t.index] = build(node)
        except (ValueError, TypeError) as e:
            _logger.debug("Failed to parse %s%d (%s/%s#%d): %s", alias_prefix, i, t.owner, t.repo, t.number, e)
    return out


def parse_pr_batch(data: Dict[str, Any], targets: Sequence[EnrichmentTarget]) -> Dict[int, PRDetails]:
    """Map target.index -> PRDetails for every alias present and parseable."""
    return _parse_aliased(data or {}, targets, "pr", "pullRequest", pr_details_from_node)


def parse_issue_batch(data: Dict[str, Any], targets: Sequence[EnrichmentTarget]) -> Dict[int, IssueDetails]:
    """Map target.index -> IssueDetails for every alias present and parseable."""
    return _parse_aliased(data or {}, targets, "issue", "issue", issue_details_from_node)
