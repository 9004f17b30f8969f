"""Operator alerts derived from one cycle's snapshots."""

from datetime import datetime

from fleet.models import Alert, ServerStatus, ServerStatusSnapshot
from fleet.settings import FleetSettings

SERVER_OFFLINE = "Server Offline"
HIGH_PING = "High Ping"
SERVER_FULL = "Server Full"
LOW_ACTIVITY = "Low Activity"


def evaluate_alerts(
    snapshot: ServerStatusSnapshot,
    settings: FleetSettings,
    local_now: datetime,
) -> list[Alert]:
    """Return the alerts a single snapshot should raise."""
    name = snapshot.name or snapshot.server_key

    def alert(kind: str, message: str) -> Alert:
        return Alert(
            server_key=snapshot.server_key,
            type=kind,
            message=message,
            timestamp=snapshot.timestamp,
        )

    if snapshot.status != ServerStatus.ONLINE:
        reason = snapshot.error_message or snapshot.status.value
        return [alert(SERVER_OFFLINE, f"Server {name} is not responding: {reason}")]

    alerts = []
    if snapshot.ping_ms > settings.high_ping_ms:
        alerts.append(alert(HIGH_PING, f"Server {name} has high ping: {snapshot.ping_ms}ms"))

    if snapshot.max_players and snapshot.player_count >= snapshot.max_players:
        alerts.append(
            alert(SERVER_FULL, f"Server {name} is at capacity: {snapshot.player_count} players")
        )

    start, end = settings.peak_hours
    if start <= local_now.hour <= end and snapshot.player_count < settings.low_activity_players:
        alerts.append(
            alert(
                LOW_ACTIVITY,
                f"Server {name} has low activity during peak hours: {snapshot.player_count} players",
            )
        )
    return alerts
