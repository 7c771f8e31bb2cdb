"""
Pytest tests for the gh-triage CLI entry points that don't need the network.

Run from the repo root:
    pytest test_triage_cli.py -v
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

# Set up path for imports
parent_dir = Path(__file__).parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

import triage_cli
from triage_cache.cache_entries import CacheKey
from triage_cache.cache_items import ItemCache
from triage_github.item_types import PRDetails

T0 = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _isolate(monkeypatch, tmp_path):
    monkeypatch.setenv("GH_TRIAGE_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("GH_TOKEN", raising=False)


# ============================================================================
# cache subcommand
# ============================================================================

def test_cache_stats_and_clear(monkeypatch, tmp_path, capsys):
    _isolate(monkeypatch, tmp_path)
    details_dir = tmp_path / "cache" / "details"
    ItemCache(details_dir).set(CacheKey("octo/repo", "PullRequest", 1), T0, PRDetails(number=1))

    assert triage_cli._cli(["cache", "stats"]) == 0
    out = capsys.readouterr().out
    assert str(details_dir) in out
    assert "details (TTL 24h)" in out
    assert "list notifications (TTL 30m)" in out

    assert triage_cli._cli(["cache", "clear"]) == 0
    assert list(details_dir.iterdir()) == []


# ============================================================================
# fetch preconditions
# ============================================================================

def test_fetch_bad_since_is_usage_error(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    assert triage_cli._cli(["fetch", "--since", "soon", "--token", "x"]) == 2


def test_fetch_without_token_is_usage_error(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    assert triage_cli._cli(["fetch"]) == 2


def test_fetch_bad_orphaned_repo_is_usage_error(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    cfg = tmp_path / "config.yaml"
    cfg.write_text("orphaned:\n  repos: [octo/repo, not-a-repo]\n")

    def no_network(*args, **kwargs):
        raise AssertionError("no request expected")

    monkeypatch.setattr(triage_cli.GitHubAPIClient, "get_authenticated_user", no_network)
    assert triage_cli._cli(["--config", str(cfg), "fetch", "--token", "x"]) == 2


def test_bad_config_is_usage_error(monkeypatch, tmp_path):
    _isolate(monkeypatch, tmp_path)
    cfg = tmp_path / "bad.yaml"
    cfg.write_text("concurrency:\n  page_workers: -1\n")
    assert triage_cli._cli(["--config", str(cfg), "cache", "stats"]) == 2


# ============================================================================
# LogProgress
# ============================================================================

def test_log_progress_throttles(caplog):
    caplog.set_level("INFO", logger="triage_cli")
    progress = triage_cli.LogProgress("enrich", step_percent=25)
    for _ in range(100):
        progress(1, 100)
    lines = [r.getMessage() for r in caplog.records if r.name == "triage_cli"]
    assert lines[0] == "enrich: 1/100 (1%)"
    assert lines[-1] == "enrich: 100/100 (100%)"
    assert len(lines) == 5
