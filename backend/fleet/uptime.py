"""
Uptime reference store.

Keeps, per server key, the first time the server was observed. Uptime is
`now - reference`, so it measures time since tracking began rather than the
server's real process start, and it restarts from zero if the store is wiped.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class UptimeStore(Protocol):
    def get(self, server_key: str) -> datetime | None: ...

    def set(self, server_key: str, timestamp: datetime) -> None: ...


class MemoryUptimeStore:
    def __init__(self) -> None:
        self._refs: dict[str, datetime] = {}

    def get(self, server_key: str) -> datetime | None:
        return self._refs.get(server_key)

    def set(self, server_key: str, timestamp: datetime) -> None:
        self._refs[server_key] = timestamp


class JsonUptimeStore:
    """Persists references as unix timestamps in a single JSON file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._refs: dict[str, float] = {}
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text())
            self._refs = {key: float(value) for key, value in data.items()}
            logger.info(f"Loaded {len(self._refs)} uptime references.")
        except Exception as e:
            logger.error(f"Failed to load uptime references: {e}")

    def _save(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(self._refs, indent=2))
        except Exception as e:
            logger.error(f"Failed to save uptime references: {e}")

    def get(self, server_key: str) -> datetime | None:
        with self._lock:
            value = self._refs.get(server_key)
        if value is None:
            return None
        return datetime.fromtimestamp(value, tz=timezone.utc)

    def set(self, server_key: str, timestamp: datetime) -> None:
        with self._lock:
            self._refs[server_key] = timestamp.timestamp()
            self._save()


def uptime_seconds(store: UptimeStore, server_key: str, now: datetime) -> int:
    """Seconds since the server's reference point, creating it on first sight."""
    reference = store.get(server_key)
    if reference is None:
        store.set(server_key, now)
        return 0
    return max(0, int((now - reference).total_seconds()))
