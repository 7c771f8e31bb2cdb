# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Rate-limit-aware requests transport adapter.

Mounted on the client's requests.Session for https:// (and http://), so every REST and
GraphQL call goes through it:

    session.mount("https://", RateLimitAdapter(monitor))

Before sending:  monitor limited -> RateLimitedError (the wrapped adapter is never called).
After receiving: X-RateLimit-* headers update the monitor; 429, or 403 with remaining "0",
                 flips the monitor to Limited and raises RateLimitedError.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from requests.adapters import BaseAdapter, HTTPAdapter
from requests.models import PreparedRequest, Response

from triage_common import RATE_LIMIT_LOW_WATERMARK

from .errors import RateLimitedError
from .ratelimit import RateLimitMonitor, parse_rate_limit_headers, retry_after

_logger = logging.getLogger(__name__)


class RateLimitAdapter(BaseAdapter):
    """Wraps another transport adapter (default: HTTPAdapter) with rate limit handling."""

    def __init__(
        self,
        monitor: RateLimitMonitor,
        *,
        base: Optional[BaseAdapter] = None,
        low_watermark: int = RATE_LIMIT_LOW_WATERMARK,
    ):
        super().__init__()
        self.monitor = monitor
        self.base: BaseAdapter = base if base is not None else HTTPAdapter()
        self.low_watermark = int(low_watermark)

    def send(self, request: PreparedRequest, **kwargs: Any) -> Response:
        url = str(request.url or "")
        self.monitor.check(url)

        resp = self.base.send(request, **kwargs)

        remaining, limit, reset_at = parse_rate_limit_headers(resp.headers)
        if remaining is not None and limit is not None:
            self.monitor.update(remaining, limit, reset_at)
            if 0 < remaining <= self.low_watermark:
                _logger.debug(
                    "Rate limit low: %d/%d remaining (resource=%s)",
                    remaining,
                    limit,
                    resp.headers.get("X-RateLimit-Resource", "core"),
                )

        zero_remaining = str(resp.headers.get("X-RateLimit-Remaining", "")).strip() == "0"
        if resp.status_code == 429 or (resp.status_code == 403 and zero_remaining):
            until = reset_at or retry_after(resp.headers, self.monitor.now())
            self.monitor.set_limited(until)
            until = self.monitor.reset_at
            _logger.warning(
                "GitHub rate limit hit (HTTP %d); pausing requests until %s",
                resp.status_code,
                until.astimezone().strftime("%H:%M:%S %Z") if until else "unknown",
            )
            resp.close()
            raise RateLimitedError(reset_at=until, url=url)

        return resp

    def close(self) -> None:
        self.base.close()
