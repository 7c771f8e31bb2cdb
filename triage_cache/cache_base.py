# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Base class for directory-backed caches (one JSON file per key).

Layout:
    <cache_dir>/
      detail_owner_repo_PullRequest_42.json
      list_notifications_octocat.json
      ...

There is no index file: enumeration (stats/clear) is a directory listing. Writes are
atomic (tmp file + os.replace), so readers never see a torn file; concurrent writers of
the same key are last-writer-wins, which is fine because every entry is a re-derivable
fetch result.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterator, Optional, Tuple

_logger = logging.getLogger(__name__)

CACHE_DIR_MODE = 0o700
CACHE_FILE_MODE = 0o600


@dataclass
class BaseCacheStats:
    """Basic cache statistics tracked automatically by BaseFileCache."""
    hit: int = 0
    miss: int = 0
    write: int = 0


class BaseFileCache:
    """Thread-safe one-file-per-key JSON cache.

    Provides:
    - Deterministic key -> file path mapping (subclasses build the filename)
    - Atomic writes with restrictive permissions
    - Corrupt/unreadable files read as "absent"
    - Best-effort clear() and directory enumeration for stats

    Subclasses must implement:
    - Typed get/put methods and entry validity rules
    """

    def __init__(self, *, cache_dir: Path, schema_version: int = 1):
        self._mu = Lock()
        self._cache_dir = Path(cache_dir)
        self._schema_version = int(schema_version)
        self.counters = BaseCacheStats()  # Track hits/misses/writes automatically

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    @property
    def schema_version(self) -> int:
        return self._schema_version

    def _path_for(self, filename: str) -> Path:
        return self._cache_dir / filename

    def _record(self, kind: str) -> None:
        with self._mu:
            setattr(self.counters, kind, getattr(self.counters, kind) + 1)

    def _read_json(self, filename: str) -> Optional[Dict[str, Any]]:
        """Read one entry file. Missing, unreadable or non-object JSON -> None."""
        path = self._path_for(filename)
        try:
            raw = json.loads(path.read_text())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            _logger.debug("Ignoring unreadable cache file %s: %s", path, e)
            return None
        return raw if isinstance(raw, dict) else None

    def _ensure_dir(self) -> None:
        self._cache_dir.mkdir(parents=True, exist_ok=True, mode=CACHE_DIR_MODE)

    def _write_json(self, filename: str, payload: Dict[str, Any]) -> None:
        """Atomically replace `filename` with `payload` (raises OSError on failure)."""
        self._ensure_dir()
        path = self._path_for(filename)
        # Unique per writer thread so concurrent writes of the same key don't share a tmp file.
        tmp = path.with_name(f".{path.name}.tmp.{os.getpid()}.{threading.get_ident()}")
        data = json.dumps(payload, separators=(",", ":"))
        try:
            fd = os.open(str(tmp), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CACHE_FILE_MODE)
            with os.fdopen(fd, "w") as f:
                f.write(data)
            os.replace(str(tmp), str(path))
        except OSError:
            try:
                tmp.unlink()
            except OSError:
                pass
            raise
        self._record("write")

    def _iter_entry_files(self) -> Iterator[Path]:
        """All entry files (skips in-progress tmp files and subdirectories)."""
        try:
            names = sorted(os.listdir(self._cache_dir))
        except FileNotFoundError:
            return
        for name in names:
            if name.startswith(".") or not name.endswith(".json"):
                continue
            p = self._cache_dir / name
            if p.is_file():
                yield p

    def clear(self) -> None:
        """Remove every file in the cache directory.

        Best-effort: keeps deleting after a failure and raises the first error at the end.
        Files deleted before the failure stay deleted.
        """
        try:
            names = sorted(os.listdir(self._cache_dir))
        except FileNotFoundError:
            return

        first_error: Optional[OSError] = None
        removed = 0
        for name in names:
            p = self._cache_dir / name
            if p.is_dir():
                continue
            try:
                p.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                _logger.debug("Failed to remove cache file %s: %s", p, e)
                if first_error is None:
                    first_error = e
        _logger.debug("Removed %d cache file(s) from %s", removed, self._cache_dir)
        if first_error is not None:
            raise first_error

    def get_counters(self) -> Tuple[int, int, int]:
        """Return (hit, miss, write) counters for this instance."""
        with self._mu:
            return (self.counters.hit, self.counters.miss, self.counters.write)
