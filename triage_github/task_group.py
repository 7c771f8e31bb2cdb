# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Cancellation token + task group for thread-based structured concurrency.

    token = CancelToken(timeout_s=120)
    with TaskGroup(token) as group:
        group.go(fetch_a)
        group.go(fetch_b)
    # leaving the block waits for every task and re-raises the first hard error

A task that raises cancels the group's token; siblings observe it at their next
`raise_if_cancelled()` (every REST page and GraphQL batch checks before sending).
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import Any, Callable, List, Optional

_logger = logging.getLogger(__name__)


class CancelledError(RuntimeError):
    """Raised by CancelToken.raise_if_cancelled()."""


class CancelToken:
    """Shared cancellation flag; children observe their parent's cancellation and deadline."""

    def __init__(self, *, parent: Optional["CancelToken"] = None, timeout_s: Optional[float] = None):
        self._event = threading.Event()
        self._parent = parent
        self._deadline = (time.monotonic() + float(timeout_s)) if timeout_s is not None else None
        self._reason = ""

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return self._parent is not None and self._parent.cancelled

    @property
    def reason(self) -> str:
        if self._event.is_set():
            return self._reason
        if self._parent is not None and self._parent.cancelled:
            return self._parent.reason
        return ""

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancelledError(self.reason or "cancelled")

    def remaining_s(self) -> Optional[float]:
        """Seconds until the nearest deadline (own or inherited), or None."""
        own = (self._deadline - time.monotonic()) if self._deadline is not None else None
        inherited = self._parent.remaining_s() if self._parent is not None else None
        vals = [v for v in (own, inherited) if v is not None]
        return max(0.0, min(vals)) if vals else None

    def child(self) -> "CancelToken":
        return CancelToken(parent=self)


class TaskGroup:
    """Runs callables on a thread pool; the first exception cancels the shared token."""

    def __init__(self, parent: Optional[CancelToken] = None, *, max_workers: Optional[int] = None):
        self.token = parent.child() if parent is not None else CancelToken()
        self._pool = ThreadPoolExecutor(max_workers=max_workers)
        self._futures: List[Future] = []
        self._mu = threading.Lock()
        self._first_error: Optional[BaseException] = None

    def go(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        def _run() -> Any:
            try:
                return fn(*args, **kwargs)
            except BaseException as e:
                with self._mu:
                    if self._first_error is None:
                        self._first_error = e
                self.token.cancel(f"{getattr(fn, '__name__', 'task')} failed: {e}")
                raise

        fut = self._pool.submit(_run)
        self._futures.append(fut)
        return fut

    def wait(self) -> None:
        """Wait for every task; re-raise the first error, if any."""
        try:
            wait_futures(self._futures)
        finally:
            self._pool.shutdown(wait=True)
        if self._first_error is not None:
            raise self._first_error

    def __enter__(self) -> "TaskGroup":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            self.token.cancel("group body raised")
            self._pool.shutdown(wait=True, cancel_futures=True)
            return
        self.wait()
