"""
Pytest tests for batched GraphQL enrichment queries and response mapping.

Run from the repo root:
    pytest triage_github/test_graphql.py -v
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

# Set up path for imports
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

from triage_github.graphql import (
    EnrichmentTarget,
    build_issue_batch_query,
    build_pr_batch_query,
    map_ci_status,
    map_review_decision,
    parse_issue_batch,
    parse_pr_batch,
)
from triage_github.item_types import IssueDetails, PRDetails


def _pr_node(number: int, **overrides):
    node = {
        "number": number,
        "state": "OPEN",
        "url": f"https://github.com/octo/repo/pull/{number}",
        "additions": 10,
        "deletions": 2,
        "changedFiles": 3,
        "isDraft": False,
        "mergeable": "MERGEABLE",
        "createdAt": "2025-05-01T10:00:00Z",
        "updatedAt": "2025-05-02T10:00:00Z",
        "closedAt": None,
        "mergedAt": None,
        "author": {"login": "alice"},
        "assignees": {"nodes": [{"login": "bob"}]},
        "labels": {"nodes": [{"name": "bug"}, {"name": "p1"}]},
        "reviewDecision": "APPROVED",
        "reviewRequests": {"nodes": [{"requestedReviewer": {"login": "carol"}}, {"requestedReviewer": {"name": "core-team"}}]},
        "latestReviews": {
            "nodes": [
                {"author": {"login": "dave"}, "state": "COMMENTED", "submittedAt": "2025-05-01T12:00:00Z"},
                {"author": {"login": "erin"}, "state": "APPROVED", "submittedAt": "2025-05-02T09:00:00Z"},
            ]
        },
        "commits": {"nodes": [{"commit": {"statusCheckRollup": {"state": "FAILURE"}}}]},
        "comments": {"totalCount": 4},
        "reviewThreads": {"totalCount": 2},
    }
    node.update(overrides)
    return node


# ============================================================================
# Query building
# ============================================================================

def test_pr_query_aliases_in_order():
    targets = [EnrichmentTarget(5, "octo", "hello", 42), EnrichmentTarget(9, "octo", "world", 7)]
    q = build_pr_batch_query(targets)

    assert q.startswith("query {")
    assert 'pr0: repository(owner: "octo", name: "hello")' in q
    assert 'pr1: repository(owner: "octo", name: "world")' in q
    assert "pullRequest(number: 42)" in q
    assert "pullRequest(number: 7)" in q
    assert q.index("pr0:") < q.index("pr1:")
    assert "reviewDecision" in q


def test_issue_query_uses_issue_field():
    q = build_issue_batch_query([EnrichmentTarget(0, "octo", "hello", 3)])
    assert 'issue0: repository(owner: "octo", name: "hello")' in q
    assert "issue(number: 3)" in q
    assert "pullRequest" not in q


def test_query_escapes_names():
    q = build_pr_batch_query([EnrichmentTarget(0, 'ev"il', "re\\po", 1)])
    assert 'owner: "ev\\"il"' in q
    assert 'name: "re\\\\po"' in q


def test_empty_batch_is_empty_query():
    assert build_pr_batch_query([]) == ""
    assert build_issue_batch_query([]) == ""


# ============================================================================
# Mapping
# ============================================================================

def test_map_review_decision():
    assert map_review_decision("APPROVED") == "approved"
    assert map_review_decision("CHANGES_REQUESTED") == "changes_requested"
    assert map_review_decision("REVIEW_REQUIRED") == "pending"
    assert map_review_decision(None) == "pending"


def test_map_ci_status():
    assert map_ci_status("SUCCESS") == "success"
    assert map_ci_status("FAILURE") == "failure"
    assert map_ci_status("ERROR") == "failure"
    assert map_ci_status("PENDING") == "pending"
    assert map_ci_status("EXPECTED") == ""
    assert map_ci_status(None) == ""


def test_parse_pr_batch_maps_back_to_target_index():
    targets = [EnrichmentTarget(11, "octo", "repo", 42), EnrichmentTarget(12, "octo", "repo", 43)]
    data = {"pr0": {"pullRequest": _pr_node(42)}, "pr1": None}

    out = parse_pr_batch(data, targets)
    assert list(out) == [11]
    d = out[11]
    assert isinstance(d, PRDetails)
    assert d.number == 42
    assert d.state == "open"
    assert d.author == "alice"
    assert d.assignees == ["bob"]
    assert d.labels == ["bug", "p1"]
    assert d.comment_count == 6
    assert d.review_comments == 2
    assert d.review_state == "approved"
    assert d.ci_status == "failure"
    assert d.mergeable is True
    assert d.requested_reviewers == ["carol", "core-team"]
    assert d.latest_reviewer == "erin"
    assert d.created_at == datetime(2025, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_parse_merged_pr():
    targets = [EnrichmentTarget(0, "octo", "repo", 1)]
    node = _pr_node(1, state="MERGED", mergedAt="2025-05-03T00:00:00Z", closedAt="2025-05-03T00:00:00Z", commits={"nodes": []})
    d = parse_pr_batch({"pr0": {"pullRequest": node}}, targets)[0]
    assert d.state == "merged"
    assert d.merged is True
    assert d.ci_status == ""


def test_parse_issue_batch_last_commenter():
    targets = [EnrichmentTarget(3, "octo", "repo", 8)]
    node = {
        "number": 8,
        "state": "CLOSED",
        "url": "https://github.com/octo/repo/issues/8",
        "createdAt": "2025-05-01T10:00:00Z",
        "updatedAt": "2025-05-02T10:00:00Z",
        "closedAt": "2025-05-02T10:00:00Z",
        "author": {"login": "alice"},
        "assignees": {"nodes": []},
        "labels": {"nodes": [{"name": "question"}]},
        "comments": {"totalCount": 5, "nodes": [{"author": {"login": "frank"}}]},
    }
    d = parse_issue_batch({"issue0": {"issue": node}}, targets)[3]
    assert isinstance(d, IssueDetails)
    assert d.state == "closed"
    assert d.comment_count == 5
    assert d.last_commenter == "frank"


def test_parse_ignores_missing_aliases():
    targets = [EnrichmentTarget(0, "octo", "repo", 1)]
    assert parse_pr_batch({}, targets) == {}
    assert parse_pr_batch(None, targets) == {}
    assert parse_issue_batch({"issue0": {"issue": None}}, targets) == {}
