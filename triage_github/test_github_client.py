"""
Pytest tests for GitHubAPIClient (token resolution, REST lists, GraphQL, error mapping).

The client runs against a real requests.Session whose https:// adapter is a
RateLimitAdapter wrapping a fake in-memory adapter, so no network is used.

Run from the repo root:
    pytest triage_github/test_github_client.py -v
"""

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.models import Response

# Set up path for imports
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

from triage_github import GitHubAPIClient
from triage_github.errors import GitHubAPIError, MissingTokenError, RateLimitedError
from triage_github.ratelimit import RateLimitMonitor
from triage_github.transport import RateLimitAdapter


def _resp(status=200, payload=None, headers=None) -> Response:
    r = Response()
    r.status_code = status
    r.headers.update(headers or {})
    r.headers.setdefault("Content-Type", "application/json")
    r._content = json.dumps(payload if payload is not None else {}).encode()
    r._content_consumed = True
    return r


class RouterAdapter(BaseAdapter):
    """Routes by URL path to a handler(request) -> Response; records every request."""

    def __init__(self, routes):
        super().__init__()
        self.routes = routes
        self.requests = []

    def send(self, request, **kwargs):
        self.requests.append(request)
        path = urlparse(request.url).path
        handler = self.routes.get(path)
        if handler is None:
            return _resp(404, {"message": "Not Found"})
        return handler(request)

    def close(self):
        pass


def _client(routes, monitor=None):
    monitor = monitor or RateLimitMonitor()
    router = RouterAdapter(routes)
    session = requests.Session()
    session.mount("https://", RateLimitAdapter(monitor, base=router))
    return GitHubAPIClient("test-token", monitor=monitor, session=session), router


def _notification(nid, repo, subject_type, number, updated="2025-06-01T10:00:00Z", unread=True):
    kind = "pulls" if subject_type == "PullRequest" else "issues"
    return {
        "id": nid,
        "reason": "mention",
        "unread": unread,
        "updated_at": updated,
        "url": f"https://api.github.com/notifications/threads/{nid}",
        "repository": {"id": 1, "name": repo.split("/")[1], "full_name": repo, "private": False},
        "subject": {
            "title": f"{subject_type} {number}",
            "url": f"https://api.github.com/repos/{repo}/{kind}/{number}" if number else None,
            "type": subject_type,
        },
    }


# ============================================================================
# Token resolution
# ============================================================================

def test_token_from_env(monkeypatch):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.setenv("GH_TOKEN", "from-gh-token")
    assert GitHubAPIClient.resolve_token() == "from-gh-token"
    assert GitHubAPIClient.resolve_token("explicit") == "explicit"


def test_token_from_gh_cli_config(monkeypatch, tmp_path):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GH_TOKEN", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    cfg = tmp_path / ".config" / "gh"
    cfg.mkdir(parents=True)
    (cfg / "hosts.yml").write_text("github.com:\n  users:\n    octocat:\n      oauth_token: gho_abc\n")
    assert GitHubAPIClient.resolve_token() == "gho_abc"


def test_missing_token(monkeypatch, tmp_path):
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GH_TOKEN", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    with pytest.raises(MissingTokenError):
        GitHubAPIClient(monitor=RateLimitMonitor())


# ============================================================================
# REST
# ============================================================================

def test_authenticated_user_memoized():
    client, router = _client({"/user": lambda req: _resp(200, {"login": "octocat"})})
    assert client.get_authenticated_user() == "octocat"
    assert client.get_authenticated_user() == "octocat"
    assert len(router.requests) == 1
    assert router.requests[0].headers["Authorization"] == "Bearer test-token"


def test_unread_notifications_filters_and_maps():
    payload = [
        _notification("1", "octo/hello", "PullRequest", 42),
        _notification("2", "octo/hello", "Issue", 7),
        _notification("3", "octo/hello", "Release", 0),
        _notification("4", "other/repo", "Issue", 9),
    ]
    client, router = _client({"/notifications": lambda req: _resp(200, payload)})
    since = datetime(2025, 5, 25, tzinfo=timezone.utc)

    items = client.list_unread_notifications(since, repos=["Octo/Hello"])

    assert [it.id for it in items] == ["1", "2"]
    pr = items[0]
    assert pr.is_pr
    assert pr.number == 42
    assert pr.type == "pull_request"
    assert pr.repository.full_name == "octo/hello"
    assert pr.unread is True

    qs = parse_qs(urlparse(router.requests[0].url).query)
    assert qs["all"] == ["false"]
    assert qs["per_page"] == ["100"]
    assert qs["page"] == ["1"]
    assert qs["since"] == ["2025-05-25T00:00:00Z"]


def test_search_items_ids_and_subject_urls():
    payload = {
        "total_count": 1,
        "items": [
            {
                "id": 555,
                "number": 12,
                "title": "Fix it",
                "state": "open",
                "updated_at": "2025-06-01T09:00:00Z",
                "created_at": "2025-05-30T09:00:00Z",
                "repository_url": "https://api.github.com/repos/octo/hello",
                "html_url": "https://github.com/octo/hello/pull/12",
                "user": {"login": "alice"},
                "labels": [{"name": "bug"}],
                "assignees": [{"login": "bob"}],
                "comments": 3,
            }
        ],
    }
    client, router = _client({"/search/issues": lambda req: _resp(200, payload)})

    items = client.list_review_requested_prs("octocat")

    assert len(items) == 1
    it = items[0]
    assert it.id == "review-requested-555"
    assert it.reason == "review_requested"
    assert it.subject.url == "https://api.github.com/repos/octo/hello/pulls/12"
    assert it.subject.type == "PullRequest"
    assert it.repository.full_name == "octo/hello"
    assert (it.author, it.labels, it.assignees, it.comment_count) == ("alice", ["bug"], ["bob"], 3)

    qs = parse_qs(urlparse(router.requests[0].url).query)
    assert qs["q"] == ["is:pr is:open review-requested:octocat"]
    assert qs["sort"] == ["updated"]

    items = client.list_assigned_issues("octocat")
    assert items[0].id == "assigned-555"
    assert items[0].subject.url.endswith("/issues/12")


def test_http_error_maps_to_github_api_error():
    client, _router = _client({"/user": lambda req: _resp(401, {"message": "Bad credentials"})})
    with pytest.raises(GitHubAPIError) as ei:
        client.get_authenticated_user()
    assert ei.value.status_code == 401
    assert "Bad credentials" in str(ei.value)
    assert client.stats.to_dict()["errors_by_status"] == {401: 1}


def test_rate_limit_surfaces_and_short_circuits():
    monitor = RateLimitMonitor()
    reset = datetime.now(timezone.utc) + timedelta(minutes=10)
    headers = {"X-RateLimit-Remaining": "0", "X-RateLimit-Limit": "5000", "X-RateLimit-Reset": str(int(reset.timestamp()))}
    client, router = _client({"/notifications": lambda req: _resp(403, {"message": "API rate limit exceeded"}, headers)}, monitor)

    with pytest.raises(RateLimitedError):
        client.list_unread_notifications(None)
    assert monitor.is_limited()

    with pytest.raises(RateLimitedError):
        client.list_authored_prs("octocat")
    assert len(router.requests) == 1
    assert client.stats.to_dict()["rate_limited_total"] == 2


# ============================================================================
# GraphQL
# ============================================================================

def test_graphql_returns_data_and_logs_errors():
    payload = {"data": {"pr0": {"pullRequest": {"number": 1}}, "pr1": None}, "errors": [{"message": "Could not resolve"}]}
    client, router = _client({"/graphql": lambda req: _resp(200, payload)})

    data = client.graphql("query { x }")

    assert data["pr0"]["pullRequest"]["number"] == 1
    assert data["pr1"] is None
    body = json.loads(router.requests[0].body)
    assert body == {"query": "query { x }"}
    stats = client.stats.to_dict()
    assert stats["graphql_calls_total"] == 1
    assert stats["graphql_errors_total"] == 1


def test_graphql_http_error():
    client, _router = _client({"/graphql": lambda req: _resp(502, {"message": "Bad gateway"})})
    with pytest.raises(GitHubAPIError):
        client.graphql("query { x }")
