"""
Local key-value persistence (JSON files in the instance folder).

Each key is stored in its own file as ``{"version": 1, "data": ...}`` so
independent records (plants, settings, achievements, counters, weather cache)
never clobber each other. Writes are atomic (temp file + rename) and
last-write-wins; there is a single writer per process.

Failures surface as StorageError. Callers log them and keep their in-memory
state authoritative for the rest of the session.
"""

from __future__ import annotations
import json
import logging
import os
import tempfile
import threading
from typing import Any, Callable, Optional

from ..utils.errors import StorageError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Record keys (kept compatible with the old browser storage names)
PLANTS_KEY = "verdantwise-plants"
SETTINGS_KEY = "verdantwise-settings"
ACHIEVEMENTS_KEY = "verdantwise-achievements"
COUNTERS_KEY = "verdantwise-counters"
WEATHER_CACHE_KEY = "verdantwise-weather-cache"
OVERVIEW_CACHE_KEY = "garden-overview"


class JsonStore:
    """File-backed key-value store with a schema version envelope."""

    def __init__(self, directory: str):
        self.directory = directory
        self._lock = threading.Lock()

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def read(self, key: str, default: Any = None) -> Any:
        """
        Read a record.

        Returns ``default`` if the record does not exist. Raises StorageError
        if the file cannot be read, is not valid JSON, or carries a newer
        schema version than this code understands.
        """
        path = self._path(key)
        with self._lock:
            if not os.path.exists(path):
                return default
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    payload = json.load(fh)
            except (OSError, ValueError) as e:
                raise StorageError(f"Failed to read {key}: {e}") from e

        if not isinstance(payload, dict) or "data" not in payload:
            raise StorageError(f"Record {key} is missing its version envelope")
        version = payload.get("version")
        if not isinstance(version, int) or version > SCHEMA_VERSION:
            raise StorageError(f"Record {key} has unsupported schema version {version!r}")
        return payload["data"]

    def write(self, key: str, data: Any) -> None:
        """Persist a record atomically. Raises StorageError on failure."""
        path = self._path(key)
        payload = {"version": SCHEMA_VERSION, "data": data}
        with self._lock:
            try:
                os.makedirs(self.directory, exist_ok=True)
                fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as fh:
                        json.dump(payload, fh, ensure_ascii=False, indent=2)
                    os.replace(tmp_path, path)
                except BaseException:
                    if os.path.exists(tmp_path):
                        os.unlink(tmp_path)
                    raise
            except (OSError, TypeError, ValueError) as e:
                raise StorageError(f"Failed to write {key}: {e}") from e

    def delete(self, key: str) -> None:
        with self._lock:
            try:
                os.unlink(self._path(key))
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StorageError(f"Failed to delete {key}: {e}") from e


def load_or_default(store: JsonStore, key: str, default_factory: Callable[[], Any]) -> Any:
    """
    Read a record, falling back to ``default_factory()`` on StorageError.

    The failure is logged; the returned value becomes the in-memory state.
    """
    try:
        value = store.read(key)
    except StorageError as e:
        logger.error(f"[Storage] {e}; using defaults for this session")
        return default_factory()
    return default_factory() if value is None else value


def save_logged(store: JsonStore, key: str, data: Any) -> Optional[StorageError]:
    """
    Write a record, logging (not raising) a StorageError.

    Returns the error so callers can surface a non-fatal warning.
    """
    try:
        store.write(key, data)
    except StorageError as e:
        logger.error(f"[Storage] {e}; keeping in-memory state")
        return e
    return None
