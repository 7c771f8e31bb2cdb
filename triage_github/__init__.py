# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""GitHub API client for gh-triage.

Every request goes through one requests.Session with RateLimitAdapter mounted, so the
shared RateLimitMonitor sees every response (REST and GraphQL) and short-circuits once
the quota is gone.

Item sources served from here:
- unread notifications          GET  /notifications (paginated)
- review-requested/authored/assigned issues+PRs   GET /search/issues (paginated)
- orphaned contributions        POST /graphql (one query per repo, see orphaned.py)
- enrichment batches            POST /graphql (see graphql.py / enricher.py)
"""

from __future__ import annotations

import logging
import os
import time
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

import requests
import yaml

from triage_common import (
    DEFAULT_PAGE_WORKERS,
    DEFAULT_PER_PAGE,
    DEFAULT_REQUEST_TIMEOUT_S,
    GITHUB_API_BASE_URL,
    GITHUB_GRAPHQL_URL,
    format_iso8601,
    parse_iso8601,
)
from triage_types import ItemReason, ItemType, ListType, SubjectType

from .errors import GitHubAPIError, MissingTokenError, RateLimitedError
from .item_types import Item, Repository, Subject, number_from_url
from .pagination import Paginator
from .ratelimit import RateLimitMonitor
from .task_group import CancelToken
from .transport import RateLimitAdapter

_logger = logging.getLogger(__name__)


class GitHubAPIStats:
    """Per-client REST/GraphQL call statistics (thread-safe)."""

    def __init__(self):
        self._mu = Lock()
        self.reset()

    def reset(self) -> None:
        self.rest_calls_total = 0
        self.rest_calls_by_label: Dict[str, int] = {}
        self.rest_time_total_s = 0.0
        self.graphql_calls_total = 0
        self.graphql_errors_total = 0
        self.errors_by_status: Dict[int, int] = {}
        self.rate_limited_total = 0

    def record_call(self, label: str, elapsed_s: float) -> None:
        with self._mu:
            if label == "graphql":
                self.graphql_calls_total += 1
            else:
                self.rest_calls_total += 1
                self.rest_calls_by_label[label] = self.rest_calls_by_label.get(label, 0) + 1
            self.rest_time_total_s += float(elapsed_s)

    def record_error(self, status_code: int) -> None:
        with self._mu:
            self.errors_by_status[int(status_code)] = self.errors_by_status.get(int(status_code), 0) + 1

    def record_graphql_errors(self) -> None:
        with self._mu:
            self.graphql_errors_total += 1

    def record_rate_limited(self) -> None:
        with self._mu:
            self.rate_limited_total += 1

    def to_dict(self) -> Dict[str, Any]:
        with self._mu:
            return {
                "rest_calls_total": self.rest_calls_total,
                "rest_calls_by_label": dict(sorted(self.rest_calls_by_label.items())),
                "graphql_calls_total": self.graphql_calls_total,
                "graphql_errors_total": self.graphql_errors_total,
                "errors_by_status": dict(sorted(self.errors_by_status.items())),
                "rate_limited_total": self.rate_limited_total,
                "time_total_s": round(self.rest_time_total_s, 3),
            }


# (query template, reason, subject type, item id prefix) per search-backed list.
SEARCH_QUERIES: Dict[ListType, Tuple[str, ItemReason, SubjectType, str]] = {
    ListType.REVIEW_REQUESTED: ("is:pr is:open review-requested:{user}", ItemReason.REVIEW_REQUESTED, SubjectType.PULL_REQUEST, "review-requested"),
    ListType.AUTHORED: ("is:pr is:open author:{user}", ItemReason.AUTHOR, SubjectType.PULL_REQUEST, "authored"),
    ListType.ASSIGNED_ISSUES: ("is:issue is:open assignee:{user}", ItemReason.ASSIGN, SubjectType.ISSUE, "assigned"),
    ListType.ASSIGNED_PRS: ("is:pr is:open assignee:{user}", ItemReason.ASSIGN, SubjectType.PULL_REQUEST, "assigned-pr"),
}

_KEPT_SUBJECT_TYPES = {SubjectType.ISSUE.value, SubjectType.PULL_REQUEST.value}


class GitHubAPIClient:
    """GitHub API client with token detection and rate limit handling.

    Features:
    - Token detection (explicit arg > GITHUB_TOKEN / GH_TOKEN > GitHub CLI hosts.yml)
    - Shared RateLimitMonitor via a mounted transport adapter
    - Parallel page fetches with ThreadPoolExecutor

    Example:
        client = GitHubAPIClient(monitor=RateLimitMonitor())
        user = client.get_authenticated_user()
    """

    @staticmethod
    def get_github_token_from_env() -> Optional[str]:
        for name in ("GITHUB_TOKEN", "GH_TOKEN"):
            tok = (os.environ.get(name) or "").strip()
            if tok:
                return tok
        return None

    @staticmethod
    def get_github_token_from_cli() -> Optional[str]:
        """Get GitHub token from GitHub CLI configuration.

        Reads the token from ~/.config/gh/hosts.yml if available.

        Returns:
            GitHub token string, or None if not found
        """
        try:
            gh_config_path = Path.home() / '.config' / 'gh' / 'hosts.yml'
            if gh_config_path.exists():
                with open(gh_config_path, 'r') as f:
                    config = yaml.safe_load(f)
                    if config and 'github.com' in config:
                        github_config = config['github.com'] or {}
                        if 'oauth_token' in github_config:
                            return github_config['oauth_token']
                        for _user, user_config in (github_config.get('users') or {}).items():
                            if user_config and 'oauth_token' in user_config:
                                return user_config['oauth_token']
        except (OSError, yaml.YAMLError):  # File read or YAML parse errors
            pass
        return None

    @classmethod
    def resolve_token(cls, token: Optional[str] = None) -> str:
        """Explicit token > env > gh CLI config. Raises MissingTokenError if none found."""
        tok = (token or "").strip() or cls.get_github_token_from_env() or cls.get_github_token_from_cli()
        if not tok:
            raise MissingTokenError(
                "GitHub token not found. Set GITHUB_TOKEN (or GH_TOKEN), or login with gh so "
                "~/.config/gh/hosts.yml exists."
            )
        return tok

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        monitor: Optional[RateLimitMonitor] = None,
        session: Optional[requests.Session] = None,
        base_url: str = GITHUB_API_BASE_URL,
        graphql_url: str = GITHUB_GRAPHQL_URL,
        timeout_s: int = DEFAULT_REQUEST_TIMEOUT_S,
        page_workers: int = DEFAULT_PAGE_WORKERS,
    ):
        """Initialize GitHub API client.

        Args:
            token: GitHub token. If not provided, GITHUB_TOKEN / GH_TOKEN, then the gh CLI config.
            monitor: Shared rate limit state. A private one is created if omitted.
            session: Pre-built session (tests). When given, it is used as-is and the caller is
                     responsible for mounting a RateLimitAdapter on it.
        """
        self._token = self.resolve_token(token)
        self.monitor = monitor or RateLimitMonitor()
        self.base_url = base_url.rstrip("/")
        self.graphql_url = graphql_url
        self.timeout_s = int(timeout_s)
        self.page_workers = int(page_workers)
        self.logger = logging.getLogger(self.__class__.__name__)
        self.stats = GitHubAPIStats()

        self.headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }

        if session is None:
            session = requests.Session()
            adapter = RateLimitAdapter(self.monitor)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self.session = session
        self._username: Optional[str] = None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(base_url={self.base_url!r})"

    @property
    def graphql_token(self) -> str:
        """Bearer token for GraphQL batch calls."""
        return self._token

    def close(self) -> None:
        self.session.close()

    # ----------------------------------------------------------------------------------
    # Low-level request helpers
    # ----------------------------------------------------------------------------------

    @staticmethod
    def _rest_label_for_url(url: str) -> str:
        path = url.split("://", 1)[-1].split("/", 1)[-1].split("?", 1)[0]
        if path.startswith("search/issues"):
            return "search_issues"
        if path.startswith("notifications"):
            return "notifications"
        if path.startswith("graphql"):
            return "graphql"
        if path == "user":
            return "user"
        return path.split("/", 1)[0] or "other"

    def _timeout(self, cancel: Optional[CancelToken]) -> float:
        remaining = cancel.remaining_s() if cancel is not None else None
        if remaining is None:
            return float(self.timeout_s)
        return max(0.1, min(float(self.timeout_s), remaining))

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> requests.Response:
        """session.request wrapper: cancellation check, stats, non-2xx -> GitHubAPIError."""
        if cancel is not None:
            cancel.raise_if_cancelled()
        label = self._rest_label_for_url(url)
        t0 = time.monotonic()
        try:
            resp = self.session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=self.headers,
                timeout=self._timeout(cancel),
            )
        except RateLimitedError:
            self.stats.record_rate_limited()
            raise
        except requests.RequestException as e:
            raise GitHubAPIError(f"{method} {url} failed: {e}", url=url) from e
        finally:
            self.stats.record_call(label, time.monotonic() - t0)

        if resp.status_code >= 400:
            self.stats.record_error(resp.status_code)
            msg = ""
            try:
                msg = str((resp.json() or {}).get("message") or "")
            except ValueError:
                msg = (resp.text or "")[:200]
            raise GitHubAPIError(
                f"{method} {url} -> HTTP {resp.status_code}: {msg}".rstrip(": "),
                status_code=resp.status_code,
                url=url,
            )
        return resp

    def _rest_get(self, url: str, params: Optional[Dict[str, Any]] = None, *, cancel: Optional[CancelToken] = None) -> requests.Response:
        if not url.startswith("http"):
            url = f"{self.base_url}/{url.lstrip('/')}"
        return self._request("GET", url, params=params, cancel=cancel)

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None, *, cancel: Optional[CancelToken] = None) -> Any:
        return self._rest_get(endpoint, params, cancel=cancel).json()

    def _paginator(self, cancel: Optional[CancelToken]) -> Paginator:
        return Paginator(
            lambda url, params: self._rest_get(url, params, cancel=cancel),
            max_workers=self.page_workers,
            cancel=cancel,
        )

    # ----------------------------------------------------------------------------------
    # Identity
    # ----------------------------------------------------------------------------------

    def get_authenticated_user(self, *, cancel: Optional[CancelToken] = None) -> str:
        """Login of the token owner (memoized)."""
        if self._username is None:
            data = self.get("/user", cancel=cancel)
            login = str((data or {}).get("login") or "")
            if not login:
                raise GitHubAPIError("GET /user returned no login")
            self._username = login
        return self._username

    # ----------------------------------------------------------------------------------
    # GraphQL
    # ----------------------------------------------------------------------------------

    def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None, *, cancel: Optional[CancelToken] = None) -> Dict[str, Any]:
        """POST a GraphQL document and return its `data` object.

        GraphQL-level `errors` (e.g. one aliased repo not found) are logged, not raised:
        the rest of `data` is still usable.
        """
        body: Dict[str, Any] = {"query": query}
        if variables:
            body["variables"] = variables
        resp = self._request("POST", self.graphql_url, json_body=body, cancel=cancel)
        if resp.status_code != 200:
            raise GitHubAPIError(f"graphql -> HTTP {resp.status_code}", status_code=resp.status_code, url=self.graphql_url)
        try:
            payload = resp.json() or {}
        except ValueError as e:
            raise GitHubAPIError(f"graphql: invalid JSON response: {e}", url=self.graphql_url) from e

        errors = payload.get("errors") or []
        if errors:
            self.stats.record_graphql_errors()
            first = errors[0].get("message") if isinstance(errors[0], dict) else errors[0]
            self.logger.debug("GraphQL returned %d error(s); first: %s", len(errors), first)
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    # ----------------------------------------------------------------------------------
    # Notifications
    # ----------------------------------------------------------------------------------

    @staticmethod
    def _item_from_notification(n: Dict[str, Any]) -> Optional[Item]:
        subject = n.get("subject") or {}
        updated_at = parse_iso8601(n.get("updated_at"))
        if updated_at is None:
            return None
        repo = Repository.from_dict(n.get("repository") or {})
        subj = Subject.from_dict(subject)
        item_type = ItemType.PULL_REQUEST.value if subj.type == SubjectType.PULL_REQUEST.value else ItemType.ISSUE.value
        return Item(
            id=str(n.get("id") or ""),
            reason=str(n.get("reason") or ""),
            unread=bool(n.get("unread", False)),
            updated_at=updated_at,
            repository=repo,
            subject=subj,
            url=str(n.get("url") or ""),
            type=item_type,
            number=number_from_url(subj.url),
        )

    def list_unread_notifications(
        self,
        since: Optional[datetime],
        *,
        repos: Optional[List[str]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> List[Item]:
        """Unread Issue/PullRequest notifications updated after `since`.

        Args:
            repos: Optional repo filter (owner/name, case-insensitive).
        """
        params: Dict[str, Any] = {"all": "false", "per_page": DEFAULT_PER_PAGE}
        if since is not None:
            params["since"] = format_iso8601(since)

        raw = self._paginator(cancel).collect(f"{self.base_url}/notifications", params, lambda r: list(r.json() or []))

        wanted = {r.lower() for r in repos} if repos else None
        items: List[Item] = []
        for n in raw:
            if not isinstance(n, dict):
                continue
            if str((n.get("subject") or {}).get("type") or "") not in _KEPT_SUBJECT_TYPES:
                continue
            if wanted is not None and str((n.get("repository") or {}).get("full_name") or "").lower() not in wanted:
                continue
            item = self._item_from_notification(n)
            if item is not None:
                items.append(item)
        self.logger.debug("Fetched %d unread notification(s) (%d raw)", len(items), len(raw))
        return items

    # ----------------------------------------------------------------------------------
    # Search-backed lists
    # ----------------------------------------------------------------------------------

    @staticmethod
    def _item_from_search(issue: Dict[str, Any], reason: str, subject_type: SubjectType, id_prefix: str) -> Optional[Item]:
        updated_at = parse_iso8601(issue.get("updated_at"))
        if updated_at is None:
            return None
        # repository_url: https://api.github.com/repos/{owner}/{repo}
        full_name = "/".join(str(issue.get("repository_url") or "").rstrip("/").split("/")[-2:])
        number = int(issue.get("number") or 0)
        is_pr = subject_type == SubjectType.PULL_REQUEST
        api_kind = "pulls" if is_pr else "issues"
        return Item(
            id=f"{id_prefix}-{issue.get('id')}",
            reason=reason,
            unread=False,
            updated_at=updated_at,
            repository=Repository(
                full_name=full_name,
                name=full_name.split("/", 1)[-1],
                html_url=f"https://github.com/{full_name}",
            ),
            subject=Subject(
                title=str(issue.get("title") or ""),
                url=f"https://api.github.com/repos/{full_name}/{api_kind}/{number}",
                type=subject_type.value,
            ),
            url=str(issue.get("url") or ""),
            type=ItemType.PULL_REQUEST.value if is_pr else ItemType.ISSUE.value,
            number=number,
            state=str(issue.get("state") or ""),
            html_url=str(issue.get("html_url") or ""),
            created_at=parse_iso8601(issue.get("created_at")),
            closed_at=parse_iso8601(issue.get("closed_at")),
            author=str((issue.get("user") or {}).get("login") or ""),
            assignees=[str(a.get("login")) for a in issue.get("assignees") or [] if a and a.get("login")],
            labels=[str(lb.get("name")) for lb in issue.get("labels") or [] if lb and lb.get("name")],
            comment_count=int(issue.get("comments") or 0),
        )

    def search_items(
        self,
        query: str,
        reason: str,
        subject_type: SubjectType,
        id_prefix: str,
        *,
        cancel: Optional[CancelToken] = None,
    ) -> List[Item]:
        params = {"q": query, "sort": "updated", "order": "desc", "per_page": DEFAULT_PER_PAGE}
        raw = self._paginator(cancel).collect(
            f"{self.base_url}/search/issues", params, lambda r: list((r.json() or {}).get("items") or [])
        )
        items = [
            it
            for it in (self._item_from_search(x, reason, subject_type, id_prefix) for x in raw if isinstance(x, dict))
            if it is not None
        ]
        self.logger.debug("search %r -> %d item(s)", query, len(items))
        return items

    def _search_list(self, kind: ListType, username: str, cancel: Optional[CancelToken]) -> List[Item]:
        template, reason, subject_type, id_prefix = SEARCH_QUERIES[kind]
        return self.search_items(template.format(user=username), reason.value, subject_type, id_prefix, cancel=cancel)

    def list_review_requested_prs(self, username: str, *, cancel: Optional[CancelToken] = None) -> List[Item]:
        return self._search_list(ListType.REVIEW_REQUESTED, username, cancel)

    def list_authored_prs(self, username: str, *, cancel: Optional[CancelToken] = None) -> List[Item]:
        return self._search_list(ListType.AUTHORED, username, cancel)

    def list_assigned_issues(self, username: str, *, cancel: Optional[CancelToken] = None) -> List[Item]:
        return self._search_list(ListType.ASSIGNED_ISSUES, username, cancel)

    def list_assigned_prs(self, username: str, *, cancel: Optional[CancelToken] = None) -> List[Item]:
        return self._search_list(ListType.ASSIGNED_PRS, username, cancel)
