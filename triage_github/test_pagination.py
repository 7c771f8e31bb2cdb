"""
Pytest tests for REST pagination (parallel when rel="last" is known, sequential otherwise).

Run from the repo root:
    pytest triage_github/test_pagination.py -v
"""

import json
import sys
import threading
from pathlib import Path

import pytest
from requests.models import Response

# Set up path for imports
parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

from triage_github.errors import GitHubAPIError
from triage_github.pagination import Paginator, page_number_from_url
from triage_github.task_group import CancelledError, CancelToken

URL = "https://api.github.com/notifications"


def _resp(items, link: str = "") -> Response:
    r = Response()
    r.status_code = 200
    if link:
        r.headers["Link"] = link
    r._content = json.dumps(items).encode()
    r._content_consumed = True
    return r


def _link(next_page=None, last_page=None) -> str:
    parts = []
    if next_page is not None:
        parts.append(f'<{URL}?per_page=2&page={next_page}>; rel="next"')
    if last_page is not None:
        parts.append(f'<{URL}?per_page=2&page={last_page}>; rel="last"')
    return ", ".join(parts)


class FakeGet:
    """Serves `pages` (1-based) either by params["page"] or by the page= in a Link URL."""

    def __init__(self, pages, *, with_last: bool = True, fail_page=None):
        self.pages = pages
        self.with_last = with_last
        self.fail_page = fail_page
        self.calls = []
        self._mu = threading.Lock()

    def __call__(self, url, params):
        page = int(params["page"]) if params else page_number_from_url(url)
        with self._mu:
            self.calls.append((url, dict(params) if params else None))
        if page == self.fail_page:
            raise GitHubAPIError(f"page {page} failed", status_code=502, url=url)
        n = len(self.pages)
        link = ""
        if page < n:
            link = _link(page + 1, n if self.with_last else None)
        return _resp(self.pages[page - 1], link)


def _extract(resp):
    return resp.json()


# ============================================================================
# page_number_from_url
# ============================================================================

def test_page_number_from_url():
    assert page_number_from_url(f"{URL}?per_page=100&page=7") == 7
    assert page_number_from_url(URL) == 0
    assert page_number_from_url(f"{URL}?page=abc") == 0
    assert page_number_from_url(None) == 0


# ============================================================================
# Paginator.collect
# ============================================================================

def test_single_page():
    get = FakeGet([[1, 2]])
    items = Paginator(get).collect(URL, {"per_page": 2}, _extract)
    assert items == [1, 2]
    assert get.calls == [(URL, {"per_page": 2, "page": 1})]


def test_parallel_pages_all_collected():
    pages = [[1, 2], [3, 4], [5, 6], [7]]
    get = FakeGet(pages)
    items = Paginator(get, max_workers=3).collect(URL, {"per_page": 2}, _extract)

    assert sorted(items) == [1, 2, 3, 4, 5, 6, 7]
    requested = sorted(p["page"] for _u, p in get.calls)
    assert requested == [1, 2, 3, 4]
    # Parallel fetches reuse the base URL + params rather than the Link URLs.
    assert all(u == URL for u, _p in get.calls)


def test_sequential_when_last_unknown():
    pages = [["a"], ["b"], ["c"]]
    get = FakeGet(pages, with_last=False)
    items = Paginator(get).collect(URL, {"per_page": 1}, _extract)

    assert items == ["a", "b", "c"]
    assert get.calls[0] == (URL, {"per_page": 1, "page": 1})
    # Follow-up calls use the Link URL verbatim, without extra params.
    assert [p for _u, p in get.calls[1:]] == [None, None]
    assert [page_number_from_url(u) for u, _p in get.calls[1:]] == [2, 3]


def test_page_failure_fails_collection():
    pages = [[1], [2], [3], [4], [5]]
    get = FakeGet(pages, fail_page=3)
    with pytest.raises(GitHubAPIError, match="page 3 failed"):
        Paginator(get, max_workers=2).collect(URL, {}, _extract)


def test_cancelled_before_first_page():
    token = CancelToken()
    token.cancel("stop")
    get = FakeGet([[1]])
    with pytest.raises(CancelledError):
        Paginator(get, cancel=token).collect(URL, {}, _extract)
    assert get.calls == []
