"""
JSON file persistence for the dashboard snapshot.

The whole snapshot is stored as one document and wholly replaced on every
successful refresh, so page loads never trigger live TeamGantt calls.
Also owns the process-local "refresh in progress" flag.
"""

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from typing import Optional

from errors import CacheReadError, ConflictError

logger = logging.getLogger(__name__)


class SnapshotCache:
    def __init__(self, path: str):
        self.path = path

    def exists(self) -> bool:
        return os.path.exists(self.path)

    def _load(self) -> dict:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise CacheReadError(f"Could not read cache {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise CacheReadError(f"Cache {self.path} does not hold a snapshot object")
        return data

    def read(self) -> Optional[dict]:
        """Return the cached snapshot, or None if absent or unreadable."""
        if not self.exists():
            return None
        try:
            return self._load()
        except CacheReadError as e:
            logger.error(f"Error reading snapshot cache: {e}")
            return None

    def write(self, snapshot: dict):
        """Replace the cached snapshot.

        Writes to a sibling temp file and renames it over the cache so
        readers see either the old or the new document, never a mix.
        """
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".cache-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        size_kb = os.path.getsize(self.path) / 1024
        logger.info(f"Cache written: {size_kb:.1f} KB to {self.path}")


class RefreshCoordinator:
    """Serializes refreshes: a second one is rejected, never queued."""

    def __init__(self):
        self._lock = threading.Lock()
        self._in_progress = False

    @property
    def in_progress(self) -> bool:
        with self._lock:
            return self._in_progress

    def try_begin_refresh(self) -> bool:
        with self._lock:
            if self._in_progress:
                return False
            self._in_progress = True
            return True

    def end_refresh(self):
        with self._lock:
            self._in_progress = False

    @contextmanager
    def refresh_slot(self):
        """Hold the refresh flag for the duration of the block.

        Raises ConflictError if another refresh already holds it.
        """
        if not self.try_begin_refresh():
            raise ConflictError("Refresh already in progress")
        try:
            yield
        finally:
            self.end_refresh()
