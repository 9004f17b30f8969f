"""Application-wide configuration constants."""

import os
from pathlib import Path

# --- Networking ---
API_HOST = os.environ.get("API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("API_PORT", "8780"))

# --- RCON ---
RCON_CONNECT_TIMEOUT = float(os.environ.get("RCON_CONNECT_TIMEOUT", "10"))
RCON_TIMEOUT = float(os.environ.get("RCON_TIMEOUT", "10"))  # per read/write

# --- Polling ---
POLL_TIMEOUT = float(os.environ.get("POLL_TIMEOUT", "20"))  # whole poll of one server
REFRESH_INTERVAL = int(os.environ.get("REFRESH_INTERVAL", "15"))  # seconds

# --- Alerts ---
HIGH_PING_MS = int(os.environ.get("HIGH_PING_MS", "500"))
LOW_ACTIVITY_PLAYERS = 5
PEAK_HOURS = (19, 23)  # inclusive, local time

# --- Storage ---
DATA_DIR = Path(os.environ.get("FLEET_DATA_DIR", "./data")).expanduser()
