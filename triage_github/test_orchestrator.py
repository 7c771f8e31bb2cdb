"""
Pytest tests for FetchOrchestrator (concurrent sources, error policy, progress) and
FetchResult.merge().

Run from the repo root:
    pytest triage_github/test_orchestrator.py -v
"""

import sys
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Set up path for imports
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

from triage_github.api.base_cached import SourceResult
from triage_github.errors import FetchError, GitHubAPIError, InvalidRepositoryError, RateLimitedError
from triage_github.item_types import Item, Repository, Subject
from triage_github.orchestrator import FetchOptions, FetchOrchestrator, FetchResult
from triage_github.orphaned import OrphanedSearchOptions
from triage_github.ratelimit import RateLimitMonitor
from triage_github.task_group import CancelToken

T0 = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _item(iid: str, repo: str = "octo/repo", number: int = 1, subject_type: str = "PullRequest") -> Item:
    kind = "pulls" if subject_type == "PullRequest" else "issues"
    return Item(
        id=iid,
        reason="mention",
        updated_at=T0,
        repository=Repository(full_name=repo, name=repo.split("/")[1]),
        subject=Subject(title=iid, url=f"https://api.github.com/repos/{repo}/{kind}/{number}", type=subject_type),
    )


class FakeStore:
    """Each source returns/raises whatever is configured under its name."""

    def __init__(self, outcomes=None):
        self.outcomes = outcomes or {}
        self.called = []
        self.tokens = []
        self._mu = threading.Lock()

    def _run(self, name, token):
        with self._mu:
            self.called.append(name)
            self.tokens.append(token)
        outcome = self.outcomes.get(name, SourceResult())
        if callable(outcome):
            outcome = outcome(token)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    def unread_items(self, cancel=None):
        return self._run("notifications", cancel)

    def review_requested_prs(self, cancel=None):
        return self._run("review-requested", cancel)

    def authored_prs(self, cancel=None):
        return self._run("authored", cancel)

    def assigned_issues(self, cancel=None):
        return self._run("assigned-issues", cancel)

    def assigned_prs(self, cancel=None):
        return self._run("assigned-prs", cancel)

    def orphaned_contributions(self, options, cancel=None):
        return self._run("orphaned", cancel)


class ProgressRecorder:
    def __init__(self):
        self._mu = threading.Lock()
        self.calls = []

    def __call__(self, done, total):
        with self._mu:
            self.calls.append((done, total))


def _monitor():
    return RateLimitMonitor(clock=lambda: T0)


# ============================================================================
# fetch_all
# ============================================================================

def test_fetch_all_collects_every_source():
    store = FakeStore(
        {
            "notifications": SourceResult(items=[_item("n1", number=1)], new_count=1),
            "review-requested": SourceResult(items=[_item("r1", number=2)]),
            "assigned-issues": SourceResult(items=[_item("i1", number=3, subject_type="Issue")], from_cache=True),
        }
    )
    progress = ProgressRecorder()
    result = FetchOrchestrator(store, _monitor()).fetch_all(on_progress=progress)

    assert sorted(store.called) == sorted(["notifications", "review-requested", "authored", "assigned-issues", "assigned-prs"])
    assert [it.id for it in result.notifications.items] == ["n1"]
    assert [it.id for it in result.review_prs.items] == ["r1"]
    assert result.assigned_issues.from_cache is True
    assert result.total_fetched() == 3
    assert result.rate_limited is False
    assert result.errors == {}
    assert result.rate_limit is not None

    assert progress.calls[0] == (0, 5)
    assert progress.calls[1:] == [(1, 5)] * 5


def test_orphaned_task_only_with_repos():
    store = FakeStore({"orphaned": SourceResult(items=[_item("o1", number=9)])})
    progress = ProgressRecorder()
    opts = FetchOptions(orphaned=OrphanedSearchOptions(repos=["octo/repo"]))

    result = FetchOrchestrator(store, _monitor()).fetch_all(opts, on_progress=progress)

    assert "orphaned" in store.called
    assert [it.id for it in result.orphaned.items] == ["o1"]
    assert progress.calls[0] == (0, 6)
    assert progress.calls[-1][1] == 6

    store = FakeStore()
    FetchOrchestrator(store, _monitor()).fetch_all(FetchOptions(orphaned=OrphanedSearchOptions(repos=[])))
    assert "orphaned" not in store.called


def test_malformed_orphaned_repo_fails_before_any_fetch():
    store = FakeStore()
    progress = ProgressRecorder()
    opts = FetchOptions(orphaned=OrphanedSearchOptions(repos=["octo/repo", "not-a-repo"]))

    with pytest.raises(InvalidRepositoryError):
        FetchOrchestrator(store, _monitor()).fetch_all(opts, on_progress=progress)

    assert store.called == []
    assert progress.calls == []


def test_rate_limited_source_sets_flag():
    store = FakeStore(
        {
            "authored": RateLimitedError(reset_at=T0 + timedelta(minutes=5)),
            "notifications": SourceResult(items=[_item("n1")]),
        }
    )
    result = FetchOrchestrator(store, _monitor()).fetch_all()

    assert result.rate_limited is True
    assert result.authored_prs.items == []
    assert [it.id for it in result.notifications.items] == ["n1"]
    assert result.errors == {}


def test_rate_limited_primary_is_not_fatal():
    store = FakeStore({"notifications": RateLimitedError()})
    result = FetchOrchestrator(store, _monitor()).fetch_all()
    assert result.rate_limited is True
    assert result.notifications.items == []


def test_secondary_failure_is_soft():
    boom = GitHubAPIError("search exploded", status_code=500)
    store = FakeStore({"assigned-prs": boom, "notifications": SourceResult(items=[_item("n1")])})

    result = FetchOrchestrator(store, _monitor()).fetch_all()

    assert result.errors == {"assigned-prs": boom}
    assert result.assigned_prs.items == []
    assert len(result.notifications.items) == 1


def test_primary_failure_raises_fetch_error_with_partial_result():
    store = FakeStore(
        {
            "notifications": GitHubAPIError("notifications exploded", status_code=502),
            "review-requested": SourceResult(items=[_item("r1")]),
        }
    )
    with pytest.raises(FetchError) as ei:
        FetchOrchestrator(store, _monitor()).fetch_all()

    err = ei.value
    assert err.source == "notifications"
    assert isinstance(err.cause, GitHubAPIError)
    assert isinstance(err.result, FetchResult)
    assert err.result.rate_limit is not None


def test_primary_failure_cancels_siblings():
    started = threading.Event()
    observed = {}

    def slow_sibling(token):
        started.set()
        for _ in range(200):
            if token.cancelled:
                observed["cancelled"] = True
                return SourceResult()
            threading.Event().wait(0.01)
        observed["cancelled"] = False
        return SourceResult()

    def failing_primary(token):
        started.wait(2)
        return GitHubAPIError("down", status_code=503)

    store = FakeStore({"notifications": failing_primary, "authored": slow_sibling})
    with pytest.raises(FetchError):
        FetchOrchestrator(store, _monitor()).fetch_all()
    assert observed.get("cancelled") is True


def test_cancelled_parent_raises_fetch_error():
    token = CancelToken()
    token.cancel("user abort")

    def primary(tok):
        tok.raise_if_cancelled()
        return SourceResult()

    store = FakeStore({"notifications": primary})
    with pytest.raises(FetchError):
        FetchOrchestrator(store, _monitor()).fetch_all(cancel=token)


def test_sources_share_one_child_token():
    store = FakeStore()
    parent = CancelToken()
    FetchOrchestrator(store, _monitor()).fetch_all(cancel=parent)
    assert len({id(t) for t in store.tokens}) == 1
    assert store.tokens[0] is not parent


# ============================================================================
# FetchResult.merge
# ============================================================================

def test_merge_dedups_by_identity_first_source_wins():
    result = FetchResult(
        notifications=SourceResult(items=[_item("n-42", number=42)]),
        review_prs=SourceResult(items=[_item("review-requested-1", number=42), _item("review-requested-2", number=43)]),
        authored_prs=SourceResult(items=[_item("authored-9", repo="OCTO/Repo", number=43)]),
        assigned_issues=SourceResult(items=[_item("assigned-1", number=42, subject_type="Issue")]),
    )

    items, stats = result.merge()

    assert [it.id for it in items] == ["n-42", "review-requested-2", "assigned-1"]
    assert stats.total == 3
    assert stats.duplicates == 2
    assert stats.by_source["notifications"] == 1
    assert stats.by_source["review-requested"] == 1
    assert stats.by_source["authored"] == 0
    assert stats.by_source["assigned-issues"] == 1


def test_merge_falls_back_to_subject_url():
    a = _item("a")
    a.subject.url = "https://api.github.com/repos/octo/repo/releases/latest"
    b = _item("b")
    b.subject.url = "https://api.github.com/repos/octo/repo/releases/latest"
    items, stats = FetchResult(notifications=SourceResult(items=[a]), orphaned=SourceResult(items=[b])).merge()
    assert [it.id for it in items] == ["a"]
    assert stats.duplicates == 1
