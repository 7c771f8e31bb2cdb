# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Rate limit monitor.

One RateLimitMonitor is created per process (usually by the CLI) and handed to the
transport adapter, the item sources and the orchestrator. There is intentionally no
module-level instance: tests build their own with a fake clock.

States:
- Normal: requests go out; every response updates remaining/limit/reset.
- Limited: entered when a response reports remaining == 0, or on 429 / 403-with-zero-remaining.
  Every outbound call fails fast with RateLimitedError until reset_at.
  Once reset_at has passed, is_limited() is False again and the first successful
  response with remaining > 0 clears the flag.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Mapping, Optional, Tuple

from triage_common import RATE_LIMIT_DEFAULT_BACKOFF_S, utcnow

from .errors import RateLimitedError

_logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class RateLimitSnapshot:
    """Point-in-time copy of the monitor state (safe to hand to display code)."""

    remaining: int
    limit: int
    reset_at: Optional[datetime]
    limited: bool

    def describe(self) -> str:
        reset = self.reset_at.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z") if self.reset_at else "unknown"
        if self.remaining < 0:
            return "rate limit: unknown"
        return f"rate limit: {self.remaining}/{self.limit} remaining, resets {reset}"


class RateLimitMonitor:
    def __init__(self, *, clock: Optional[Clock] = None):
        self._mu = Lock()
        self._now: Clock = clock or utcnow
        self._remaining = -1
        self._limit = -1
        self._reset_at: Optional[datetime] = None
        self._limited = False

    def now(self) -> datetime:
        return self._now()

    def update(self, remaining: int, limit: int, reset_at: Optional[datetime]) -> None:
        """Record quota headers from a response."""
        with self._mu:
            now = self._now()
            still_blocked = self._limited and self._reset_at is not None and now < self._reset_at
            self._remaining = int(remaining)
            self._limit = int(limit)
            if remaining <= 0:
                self._limited = True
                self._reset_at = reset_at or (now + timedelta(seconds=RATE_LIMIT_DEFAULT_BACKOFF_S))
                return
            if still_blocked:
                # A response that was in flight before we got limited; keep the recorded reset.
                return
            self._limited = False
            self._reset_at = reset_at

    def set_limited(self, reset_at: Optional[datetime]) -> None:
        with self._mu:
            self._limited = True
            self._remaining = 0
            self._reset_at = reset_at or (self._now() + timedelta(seconds=RATE_LIMIT_DEFAULT_BACKOFF_S))

    def clear(self) -> None:
        with self._mu:
            self._limited = False

    def is_limited(self) -> bool:
        with self._mu:
            if not self._limited:
                return False
            if self._reset_at is None:
                return True
            return self._now() < self._reset_at

    def check(self, url: str = "") -> None:
        """Raise RateLimitedError if currently limited."""
        with self._mu:
            limited = self._limited and (self._reset_at is None or self._now() < self._reset_at)
            reset_at = self._reset_at
        if limited:
            raise RateLimitedError(reset_at=reset_at, url=url)

    @property
    def reset_at(self) -> Optional[datetime]:
        with self._mu:
            return self._reset_at

    def snapshot(self) -> RateLimitSnapshot:
        with self._mu:
            limited = self._limited and (self._reset_at is None or self._now() < self._reset_at)
            return RateLimitSnapshot(
                remaining=self._remaining,
                limit=self._limit,
                reset_at=self._reset_at,
                limited=limited,
            )


def parse_rate_limit_headers(headers: Mapping[str, str]) -> Tuple[Optional[int], Optional[int], Optional[datetime]]:
    """Parse X-RateLimit-{Remaining,Limit,Reset}. Missing/invalid values come back as None."""

    def _int(name: str) -> Optional[int]:
        raw = headers.get(name)
        if raw is None:
            return None
        try:
            return int(str(raw).strip())
        except (ValueError, TypeError):
            return None

    remaining = _int("X-RateLimit-Remaining")
    limit = _int("X-RateLimit-Limit")
    reset_epoch = _int("X-RateLimit-Reset")
    reset_at = datetime.fromtimestamp(reset_epoch, tz=timezone.utc) if reset_epoch is not None else None
    return remaining, limit, reset_at


def retry_after(headers: Mapping[str, str], now: datetime) -> Optional[datetime]:
    """Retry-After (seconds form) as an absolute time."""
    raw = headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return now + timedelta(seconds=int(str(raw).strip()))
    except (ValueError, TypeError):
        return None
