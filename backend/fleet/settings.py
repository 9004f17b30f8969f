"""Fleet polling settings, built once at startup and passed to whoever needs them."""

from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, ConfigDict

from config import (
    DATA_DIR,
    HIGH_PING_MS,
    LOW_ACTIVITY_PLAYERS,
    PEAK_HOURS,
    POLL_TIMEOUT,
    RCON_CONNECT_TIMEOUT,
    RCON_TIMEOUT,
    REFRESH_INTERVAL,
)

# environment variable -> settings field
_ENV_FIELDS = {
    "RCON_CONNECT_TIMEOUT": "connect_timeout",
    "RCON_TIMEOUT": "rcon_timeout",
    "POLL_TIMEOUT": "poll_timeout",
    "REFRESH_INTERVAL": "refresh_interval",
    "HIGH_PING_MS": "high_ping_ms",
    "FLEET_DATA_DIR": "data_dir",
}


class FleetSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    connect_timeout: float = RCON_CONNECT_TIMEOUT
    rcon_timeout: float = RCON_TIMEOUT
    poll_timeout: float = POLL_TIMEOUT
    refresh_interval: int = REFRESH_INTERVAL
    high_ping_ms: int = HIGH_PING_MS
    low_activity_players: int = LOW_ACTIVITY_PLAYERS
    peak_hours: tuple[int, int] = PEAK_HOURS
    data_dir: Path = DATA_DIR

    @property
    def uptime_path(self) -> Path:
        return self.data_dir / "uptime.json"

    @property
    def status_db_path(self) -> Path:
        return self.data_dir / "status.db"


def load_settings(env: Mapping[str, str] | None = None) -> FleetSettings:
    """Settings from module defaults, overridden by any matching keys in `env`."""
    overrides = {
        field: env[var]
        for var, field in _ENV_FIELDS.items()
        if env and env.get(var)
    }
    return FleetSettings(**overrides)
