"""
Status sink: persists the latest status row per server.

Writes are upserts keyed by server key: one current row per server,
last write wins.
"""

import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Protocol

from fleet.models import ServerStatus, StatusRow


class StatusSink(Protocol):
    def upsert(self, row: StatusRow) -> None: ...

    def get(self, server_key: str) -> StatusRow | None: ...

    def all(self) -> list[StatusRow]: ...


class MemoryStatusSink:
    def __init__(self) -> None:
        self._rows: dict[str, StatusRow] = {}
        self._lock = threading.Lock()

    def upsert(self, row: StatusRow) -> None:
        with self._lock:
            self._rows[row.server_key] = row

    def get(self, server_key: str) -> StatusRow | None:
        return self._rows.get(server_key)

    def all(self) -> list[StatusRow]:
        with self._lock:
            return list(self._rows.values())


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS server_status (
    server_key      TEXT PRIMARY KEY,
    status          TEXT NOT NULL,
    players_online  INTEGER NOT NULL DEFAULT 0,
    ping_ms         INTEGER NOT NULL DEFAULT 0,
    uptime_seconds  INTEGER NOT NULL DEFAULT 0,
    last_updated    TIMESTAMP NOT NULL
);
"""

_UPSERT_SQL = """
INSERT INTO server_status (server_key, status, players_online, ping_ms, uptime_seconds, last_updated)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT(server_key) DO UPDATE SET
    status = excluded.status,
    players_online = excluded.players_online,
    ping_ms = excluded.ping_ms,
    uptime_seconds = excluded.uptime_seconds,
    last_updated = excluded.last_updated
"""


class SqliteStatusSink:
    """SQLite-backed sink. Safe to share between worker threads."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        if str(path) != ":memory:":
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA_SQL)
        self._conn.commit()

    def upsert(self, row: StatusRow) -> None:
        with self._lock:
            self._conn.execute(
                _UPSERT_SQL,
                (
                    row.server_key,
                    row.status.value,
                    row.players_online,
                    row.ping_ms,
                    row.uptime_seconds,
                    row.last_updated.isoformat(),
                ),
            )
            self._conn.commit()

    def get(self, server_key: str) -> StatusRow | None:
        with self._lock:
            found = self._conn.execute(
                "SELECT * FROM server_status WHERE server_key = ?", (server_key,)
            ).fetchone()
        return _to_row(found) if found else None

    def all(self) -> list[StatusRow]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM server_status ORDER BY server_key"
            ).fetchall()
        return [_to_row(r) for r in rows]

    def count(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM server_status").fetchone()[0]

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def _to_row(r: sqlite3.Row) -> StatusRow:
    return StatusRow(
        server_key=r["server_key"],
        status=ServerStatus(r["status"]),
        players_online=r["players_online"],
        ping_ms=r["ping_ms"],
        uptime_seconds=r["uptime_seconds"],
        last_updated=datetime.fromisoformat(r["last_updated"]),
    )
