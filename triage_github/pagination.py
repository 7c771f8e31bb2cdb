# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Paginated REST list calls.

Strategy:
- Fetch page 1 and read the Link header.
- If it advertises rel="last", fetch pages 2..last concurrently (ThreadPoolExecutor,
  bounded by both the worker limit and the page count) and concatenate.
- Otherwise follow rel="next" strictly sequentially (never guess an upper bound).

Completeness over order: every page is fetched, items may come back in any page order.
One failing page fails the whole collection; pages not yet started are cancelled.
"""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional, TypeVar
from urllib.parse import parse_qs, urlparse

from requests.models import Response

from triage_common import DEFAULT_PAGE_WORKERS

from .task_group import CancelToken

_logger = logging.getLogger(__name__)

T = TypeVar("T")

GetFn = Callable[[str, Optional[Dict[str, Any]]], Response]
ExtractFn = Callable[[Response], List[T]]


def page_number_from_url(url: Optional[str]) -> int:
    """`page` query param of a Link URL, or 0 if absent/invalid."""
    if not url:
        return 0
    try:
        vals = parse_qs(urlparse(url).query).get("page") or []
        return int(vals[0]) if vals else 0
    except (ValueError, TypeError):
        return 0


def _link_url(resp: Response, rel: str) -> Optional[str]:
    link = (resp.links or {}).get(rel) or {}
    url = link.get("url")
    return str(url) if url else None


class Paginator:
    """Collects all pages of a REST list endpoint through a `get(url, params)` callable."""

    def __init__(self, get: GetFn, *, max_workers: int = DEFAULT_PAGE_WORKERS, cancel: Optional[CancelToken] = None):
        self._get = get
        self._max_workers = max(1, int(max_workers))
        self._cancel = cancel

    def _check_cancel(self) -> None:
        if self._cancel is not None:
            self._cancel.raise_if_cancelled()

    def collect(self, url: str, params: Optional[Dict[str, Any]], extract: ExtractFn) -> List[T]:
        base_params: Dict[str, Any] = dict(params or {})

        self._check_cancel()
        first = self._get(url, dict(base_params, page=1))
        items: List[T] = list(extract(first))

        next_url = _link_url(first, "next")
        if not next_url:
            return items

        last_page = page_number_from_url(_link_url(first, "last"))
        if last_page > 1:
            items.extend(self._collect_parallel(url, base_params, extract, last_page))
            return items

        _logger.debug("No last page advertised for %s; paginating sequentially", url)
        while next_url:
            self._check_cancel()
            # next_url already carries every query param.
            resp = self._get(next_url, None)
            items.extend(extract(resp))
            next_url = _link_url(resp, "next")
        return items

    def _collect_parallel(self, url: str, base_params: Dict[str, Any], extract: ExtractFn, last_page: int) -> List[T]:
        pages = list(range(2, last_page + 1))
        results: Dict[int, List[T]] = {}

        def _fetch(page: int) -> List[T]:
            self._check_cancel()
            return list(extract(self._get(url, dict(base_params, page=page))))

        workers = min(self._max_workers, len(pages))
        _logger.debug("Fetching %d more page(s) of %s with %d worker(s)", len(pages), url, workers)
        pool = ThreadPoolExecutor(max_workers=workers)
        try:
            futures = {pool.submit(_fetch, p): p for p in pages}
            # Returns early on the first failure, otherwise once everything is done.
            done, _pending = wait(futures, return_when=FIRST_EXCEPTION)
            for fut in done:
                exc = fut.exception()
                if exc is not None:
                    raise exc
            for fut, page in futures.items():
                results[page] = fut.result()
        finally:
            pool.shutdown(wait=True, cancel_futures=True)

        out: List[T] = []
        for page in sorted(results):
            out.extend(results[page])
        return out
