"""
Pytest tests for triage_config.py (durations, YAML loading, validation).

Run from the repo root:
    pytest test_triage_config.py -v
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Set up path for imports
parent_dir = Path(__file__).parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

from triage_config import ConfigError, TriageConfig, config_from_dict, load_config, parse_duration, since_from_duration


# ============================================================================
# Durations
# ============================================================================

@pytest.mark.parametrize(
    "value,expected",
    [
        ("1w", timedelta(weeks=1)),
        ("30d", timedelta(days=30)),
        ("12h", timedelta(hours=12)),
        ("45m", timedelta(minutes=45)),
        ("6mo", timedelta(days=180)),
        ("1y", timedelta(days=365)),
        (" 2 weeks ", timedelta(weeks=2)),
    ],
)
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["", "w", "1", "1fortnight", "-1d", None])
def test_parse_duration_invalid(value):
    with pytest.raises(ConfigError):
        parse_duration(value)


def test_since_from_duration():
    now = datetime(2025, 6, 1, tzinfo=timezone.utc)
    assert since_from_duration("3d", now=now) == datetime(2025, 5, 29, tzinfo=timezone.utc)


# ============================================================================
# Loading
# ============================================================================

def test_missing_file_gives_defaults(tmp_path):
    cfg = load_config(tmp_path / "nope.yaml")
    assert cfg == TriageConfig()
    assert cfg.orphaned.active_repos == []
    assert cfg.concurrency.enrich_batch_size == 100
    assert cfg.concurrency.max_concurrent_batches == 12


def test_load_full_file(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text(
        "since: 2w\n"
        "cache_dir: /tmp/gh-triage-test\n"
        "orphaned:\n"
        "  repos: [octo/a, octo/b]\n"
        "  stale_days: 14\n"
        "concurrency:\n"
        "  max_concurrent_batches: 4\n"
        "  request_timeout_s: 10\n"
    )
    cfg = load_config(p)
    assert cfg.since == "2w"
    assert cfg.cache_dir == Path("/tmp/gh-triage-test")
    # Repos without an explicit `enabled` turn detection on.
    assert cfg.orphaned.enabled is True
    assert cfg.orphaned.active_repos == ["octo/a", "octo/b"]
    assert cfg.orphaned.stale_days == 14
    assert cfg.orphaned.consecutive_author_comments == 2
    assert cfg.concurrency.max_concurrent_batches == 4
    assert cfg.concurrency.request_timeout_s == 10
    assert cfg.concurrency.page_workers == 8


def test_orphaned_disabled_keeps_repos_inactive():
    cfg = config_from_dict({"orphaned": {"enabled": False, "repos": ["octo/a"]}})
    assert cfg.orphaned.repos == ["octo/a"]
    assert cfg.orphaned.active_repos == []


def test_empty_file_gives_defaults(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("")
    assert load_config(p) == TriageConfig()


@pytest.mark.parametrize(
    "text",
    [
        "- just\n- a list\n",
        "since: forever\n",
        "concurrency: 5\n",
        "concurrency:\n  max_concurrent_batches: 0\n",
        "concurrency:\n  page_workers: lots\n",
        "orphaned:\n  repos: octo/a\n",
        "since: [unclosed\n",
    ],
)
def test_invalid_config_raises(tmp_path, text):
    p = tmp_path / "config.yaml"
    p.write_text(text)
    with pytest.raises(ConfigError):
        load_config(p)
