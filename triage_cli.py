#!/usr/bin/env python3
# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
gh-triage: fetch, enrich and list GitHub work items, and inspect the local cache.

Examples:
  gh-triage fetch                 # unread notifications + review requests + authored/assigned
  gh-triage -v fetch --since 2w   # wider window, progress + API stats on stderr
  gh-triage fetch --json          # machine-readable output
  gh-triage cache stats
  gh-triage cache clear
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from pathlib import Path
from typing import List, Optional, Sequence

from triage_cache.cache_entries import CacheStats
from triage_cache.cache_items import ItemCache
from triage_cache.cache_ttl_utils import detail_ttl_s, list_ttl_s
from triage_common import PROGRESS_LOG_STEP_PERCENT, triage_details_cache_dir
from triage_config import ConfigError, TriageConfig, load_config, since_from_duration
from triage_github import GitHubAPIClient
from triage_github.errors import FetchError, GitHubAPIError, InvalidRepositoryError, MissingTokenError
from triage_github.item_store import ItemStore
from triage_github.item_types import IssueDetails, Item, PRDetails, split_repo_name
from triage_github.orchestrator import FetchOptions, FetchOrchestrator
from triage_github.orphaned import OrphanedSearchOptions
from triage_github.ratelimit import RateLimitMonitor
from triage_github.task_group import CancelToken
from triage_types import ListType

logger = logging.getLogger(__name__)


class LogProgress:
    """Progress callback that logs at most once per `step_percent` (thread-safe)."""

    def __init__(self, label: str, *, step_percent: int = PROGRESS_LOG_STEP_PERCENT):
        self.label = label
        self.step = max(1, int(step_percent))
        self._mu = threading.Lock()
        self._done = 0
        self._last_logged = -1

    def __call__(self, delta: int, total: int) -> None:
        with self._mu:
            self._done += delta
            if total <= 0:
                return
            pct = int(self._done * 100 / total)
            bucket = pct - pct % self.step
            if bucket <= self._last_logged and self._done < total:
                return
            self._last_logged = bucket
            done = self._done
        logger.info("%s: %d/%d (%d%%)", self.label, done, total, pct)


def _fmt_age(seconds: int) -> str:
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    return f"{seconds // 60}m"


def _details_summary(item: Item) -> str:
    d = item.details
    if d is None:
        return ""
    if isinstance(d, PRDetails):
        bits = [d.review_state or "pending"]
        if d.ci_status:
            bits.append(f"ci={d.ci_status}")
        if d.draft:
            bits.append("draft")
        bits.append(f"+{d.additions}/-{d.deletions}")
        return " ".join(bits)
    if isinstance(d, IssueDetails):
        return f"last={d.last_commenter}" if d.last_commenter else ""
    raise TypeError(f"unknown details variant: {type(d).__name__}")


def _print_table(items: List[Item]) -> None:
    for it in sorted(items, key=lambda i: i.updated_at, reverse=True):
        kind = "PR" if it.is_pr else "IS"
        ref = f"{it.repository.full_name}#{it.subject_number() or '?'}"
        print(f"{it.updated_at:%Y-%m-%d %H:%M}  {kind}  {it.reason:<16} {ref:<40} {it.subject.title[:70]}  {_details_summary(it)}".rstrip())


def _print_cache_stats(stats: CacheStats) -> None:
    rows = [(f"details (TTL {_fmt_age(detail_ttl_s())})", stats.detail)]
    for lt in ListType:
        rows.append((f"list {lt.value} (TTL {_fmt_age(list_ttl_s(lt))})", stats.lists[lt]))
    print(f"{'Category':<40} {'Total':>6} {'Valid':>6} {'Expired':>8}")
    for label, s in rows:
        print(f"{label:<40} {s.total:>6} {s.valid:>6} {s.expired:>8}")
    print(f"{'all':<40} {stats.total:>6} {stats.valid:>6} {stats.total - stats.valid:>8}")


def _cmd_cache(args: argparse.Namespace, cfg: TriageConfig) -> int:
    cache = ItemCache(triage_details_cache_dir(cfg.cache_dir))
    if args.cache_cmd == "clear":
        try:
            cache.clear()
        except OSError as e:
            logger.error("Failed to clear cache at %s: %s", cache.cache_dir, e)
            return 1
        print(f"Cleared cache at {cache.cache_dir}")
        return 0
    print(f"Cache directory: {cache.cache_dir}")
    _print_cache_stats(cache.stats())
    return 0


def _cmd_fetch(args: argparse.Namespace, cfg: TriageConfig) -> int:
    since = since_from_duration(args.since or cfg.since)
    for full_name in cfg.orphaned.active_repos + list(args.repo):
        split_repo_name(full_name)
    monitor = RateLimitMonitor()
    client = GitHubAPIClient(
        args.token,
        monitor=monitor,
        timeout_s=cfg.concurrency.request_timeout_s,
        page_workers=cfg.concurrency.page_workers,
    )
    cache = None if args.no_cache else ItemCache(triage_details_cache_dir(cfg.cache_dir))
    cancel = CancelToken(timeout_s=args.timeout) if args.timeout else CancelToken()

    username = client.get_authenticated_user(cancel=cancel)
    logger.info("Fetching items for %s since %s", username, since.strftime("%Y-%m-%d %H:%M UTC"))

    store = ItemStore(
        client,
        cache,
        monitor,
        username=username,
        since=since,
        repos_filter=args.repo or None,
        enrich_batch_size=cfg.concurrency.enrich_batch_size,
        max_concurrent_batches=cfg.concurrency.max_concurrent_batches,
        orphaned_workers=cfg.concurrency.orphaned_workers,
    )
    options = FetchOptions()
    repos = cfg.orphaned.active_repos
    if repos:
        options.orphaned = OrphanedSearchOptions(
            repos=repos,
            since=since,
            stale_days=cfg.orphaned.stale_days,
            consecutive_author_comments=cfg.orphaned.consecutive_author_comments,
            max_items_per_repo=cfg.orphaned.max_items_per_repo,
        )

    orchestrator = FetchOrchestrator(store, monitor)
    try:
        result = orchestrator.fetch_all(options, cancel=cancel, on_progress=LogProgress("sources"))
    except FetchError as e:
        logger.error("Fetch failed: %s", e)
        return 1

    items, merge_stats = result.merge()
    logger.info(
        "Fetched %d item(s) (%d duplicate(s) dropped; %d new notification(s))",
        merge_stats.total,
        merge_stats.duplicates,
        result.notifications.new_count,
    )

    if not args.no_enrich and items:
        hits = store.enrich(items, LogProgress("enrich"), cancel)
        logger.info("Enriched %d item(s) (%d from cache)", len(items), hits)

    if args.json:
        json.dump([it.to_dict() for it in items], sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        _print_table(items)

    if result.rate_limited:
        print(f"\nRate limited: results may be incomplete. Try again after reset ({result.rate_limit.describe()}).", file=sys.stderr)
    for name, err in sorted(result.errors.items()):
        print(f"warning: {name} unavailable: {err}", file=sys.stderr)
    logger.info("API stats: %s", json.dumps(client.stats.to_dict(), sort_keys=True))
    return 0


def _cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Fetch, enrich and list GitHub work items.",
        epilog="Examples:" + __doc__.split("Examples:", 1)[-1],
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for progress/info, -vv for debug")
    parser.add_argument("--config", type=Path, default=None, help="Config file (default: ~/.config/gh-triage/config.yaml)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_fetch = sub.add_parser("fetch", help="Fetch and list work items")
    p_fetch.add_argument("--since", default=None, help="Lookback window, e.g. 1w, 3d, 12h (default: config or 1w)")
    p_fetch.add_argument("--repo", action="append", default=[], help="Only notifications from this owner/name (repeatable)")
    p_fetch.add_argument("--token", default=None, help="GitHub token (default: GITHUB_TOKEN / GH_TOKEN / gh CLI)")
    p_fetch.add_argument("--no-enrich", action="store_true", help="Skip the GraphQL enrichment pass")
    p_fetch.add_argument("--no-cache", action="store_true", help="Neither read nor write the local cache")
    p_fetch.add_argument("--timeout", type=float, default=None, help="Overall deadline in seconds")
    p_fetch.add_argument("--json", action="store_true", help="Print items as JSON")

    p_cache = sub.add_parser("cache", help="Inspect or clear the local cache")
    p_cache.add_argument("cache_cmd", choices=["stats", "clear"])

    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s", stream=sys.stderr)

    try:
        cfg = load_config(args.config)
        if args.cmd == "cache":
            return _cmd_cache(args, cfg)
        return _cmd_fetch(args, cfg)
    except (ConfigError, MissingTokenError, InvalidRepositoryError) as e:
        logger.error("%s", e)
        return 2
    except GitHubAPIError as e:
        # Raised before the orchestrator runs (e.g. resolving the authenticated user).
        logger.error("GitHub API error: %s", e)
        return 1


def main() -> None:
    raise SystemExit(_cli())


if __name__ == "__main__":
    main()
