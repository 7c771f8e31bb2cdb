# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Common shared enums used by both:
- `triage_cache/*` (on-disk entry format)
- `triage_github/*` (API normalization, item sources, orchestration)

This module MUST NOT import triage_cache or triage_github modules to avoid cycles.
"""

from __future__ import annotations

from enum import Enum


class ItemReason(str, Enum):
    """Why an item surfaced (GitHub notification reasons plus our synthetic ones)."""

    MENTION = "mention"
    REVIEW_REQUESTED = "review_requested"
    AUTHOR = "author"
    ASSIGN = "assign"
    COMMENT = "comment"
    SUBSCRIBED = "subscribed"
    TEAM_MENTION = "team_mention"
    STATE_CHANGE = "state_change"
    CI_ACTIVITY = "ci_activity"
    MANUAL = "manual"
    ORPHANED = "orphaned"


class SubjectType(str, Enum):
    """Notification subject kinds (GitHub's spelling)."""

    ISSUE = "Issue"
    PULL_REQUEST = "PullRequest"
    RELEASE = "Release"
    DISCUSSION = "Discussion"


class ItemType(str, Enum):
    ISSUE = "issue"
    PULL_REQUEST = "pull_request"


class ListType(str, Enum):
    """Cached list kinds. Values are used verbatim in cache filenames."""

    NOTIFICATIONS = "notifications"
    REVIEW_REQUESTED = "review-requested"
    AUTHORED = "authored"
    ASSIGNED_ISSUES = "assigned-issues"
    ASSIGNED_PRS = "assigned-prs"
    ORPHANED = "orphaned"


class CIStatus(str, Enum):
    """Normalized statusCheckRollup state."""

    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"
    UNKNOWN = ""


class ReviewState(str, Enum):
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    PENDING = "pending"
    REVIEWED = "reviewed"


# authorAssociation values that count as "the team" for orphaned detection.
TEAM_ASSOCIATIONS = frozenset({"MEMBER", "OWNER", "COLLABORATOR"})


def is_team_member(author_association: str) -> bool:
    return str(author_association or "").upper() in TEAM_ASSOCIATIONS
