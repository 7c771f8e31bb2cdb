# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Exception types shared by the GitHub fetch pipeline.

Taxonomy:
- Precondition errors (MissingTokenError, InvalidRepositoryError): fail fast, never retried.
- RateLimitedError: the "quota exhausted" signal; callers degrade to cache instead of aborting.
- GitHubAPIError: any other non-2xx / transport failure; handled per source.
- FetchError: the primary source failed hard; carries the partial FetchResult.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional


class GitHubAPIError(RuntimeError):
    """Non-rate-limit GitHub API failure."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, url: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class RateLimitedError(GitHubAPIError):
    """Quota exhausted: do not retry before reset_at."""

    def __init__(self, message: str = "GitHub API rate limit exceeded", *, reset_at: Optional[datetime] = None, url: str = ""):
        super().__init__(message, status_code=None, url=url)
        self.reset_at = reset_at


class MissingTokenError(RuntimeError):
    """No GitHub token could be resolved (env, explicit, or gh CLI config)."""


class InvalidRepositoryError(ValueError):
    """Repository name is not of the form owner/name."""


class FetchError(RuntimeError):
    """The primary item source failed; `result` holds whatever the other sources produced."""

    def __init__(self, source: str, cause: BaseException, result: Any = None):
        super().__init__(f"{source}: {cause}")
        self.source = source
        self.cause = cause
        self.result = result
