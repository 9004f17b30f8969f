"""REST API routes for the fleet status service."""

import asyncio
import logging

from fastapi import APIRouter, HTTPException

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# These will be injected by main.py at startup
_monitor = None
_registry = None
_sink = None


def init_routes(monitor, registry, sink) -> None:
    """Inject service dependencies into the routes module."""
    global _monitor, _registry, _sink
    _monitor = monitor
    _registry = registry
    _sink = sink


async def _current_cluster():
    return _monitor.latest or await _monitor.refresh()


# --- Servers ---

@router.get("/servers")
async def list_servers():
    """Latest cluster snapshot, polling once if no cycle has run yet."""
    cluster = await _current_cluster()
    return cluster.model_dump(mode="json")


@router.post("/servers/refresh")
async def refresh_servers():
    cluster = await _monitor.refresh()
    return cluster.model_dump(mode="json")


@router.get("/servers/{server_key}")
async def get_server(server_key: str):
    cluster = await _current_cluster()
    snapshot = cluster.servers.get(server_key)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Server not found")
    return snapshot.model_dump(mode="json")


@router.get("/player-count")
async def player_count():
    cluster = await _current_cluster()
    return {"player_count": cluster.total_players}


@router.get("/alerts")
async def list_alerts():
    return {"alerts": [a.model_dump(mode="json") for a in _monitor.alerts]}


# --- Health ---

@router.get("/health")
async def health():
    checks = {
        "monitor": {
            "status": "healthy" if _monitor.running else "warning",
            "message": "Polling" if _monitor.running else "Monitor loop not running",
        },
        "status_store": await asyncio.to_thread(_check_sink),
        "config": _check_config(),
    }
    states = [c["status"] for c in checks.values()]
    if "error" in states:
        overall = "error"
    elif "warning" in states:
        overall = "warning"
    else:
        overall = "healthy"
    return {"status": overall, "health": checks}


def _check_sink() -> dict:
    try:
        rows = _sink.all()
    except Exception as e:
        logger.error(f"Status store check failed: {e}")
        return {"status": "error", "message": str(e)}
    return {"status": "healthy", "message": f"{len(rows)} status rows"}


def _check_config() -> dict:
    try:
        servers = _registry.get_servers()
    except Exception as e:
        return {"status": "error", "message": str(e)}
    if not servers:
        return {"status": "warning", "message": "No servers configured"}
    return {"status": "healthy", "message": f"{len(servers)} servers configured"}
