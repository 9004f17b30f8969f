"""
Fleet status service: FastAPI application entry point.

Starts the Fleet Monitor on startup, serves the REST API and the
WebSocket endpoint the dashboard listens on.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from api.routes import init_routes, router
from api.websocket import ConnectionManager
from config import API_HOST, API_PORT
from fleet.monitor import FleetMonitor
from fleet.poller import FleetPoller
from fleet.registry import EnvServerRegistry, ServerRegistry
from fleet.settings import FleetSettings, load_settings
from fleet.sink import SqliteStatusSink, StatusSink
from fleet.uptime import JsonUptimeStore, UptimeStore
from remote_console.session import RconSession

# --- Logging ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    settings: FleetSettings | None = None,
    registry: ServerRegistry | None = None,
    uptime_store: UptimeStore | None = None,
    sink: StatusSink | None = None,
    session_factory=RconSession,
) -> FastAPI:
    """Build the app. Anything not passed in is created from the environment at startup."""
    ws_manager = ConnectionManager()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start/stop the fleet monitor."""
        fleet_settings = settings or load_settings(os.environ)
        fleet_registry = registry or EnvServerRegistry()
        fleet_uptime = uptime_store or JsonUptimeStore(fleet_settings.uptime_path)
        fleet_sink = sink or SqliteStatusSink(fleet_settings.status_db_path)

        poller = FleetPoller(
            fleet_registry,
            fleet_uptime,
            fleet_sink,
            fleet_settings,
            session_factory=session_factory,
        )
        monitor = FleetMonitor(poller)
        monitor.on_event(ws_manager.handle_event)
        init_routes(monitor, fleet_registry, fleet_sink)
        app.state.monitor = monitor
        app.state.status_sink = fleet_sink

        logger.info("Starting fleet status service...")
        try:
            await monitor.start()
            yield
        except Exception as e:
            logger.error(f"Startup failed: {e}", exc_info=True)
            raise
        finally:
            logger.info("Shutting down fleet status service...")
            await monitor.stop()
            if sink is None:
                fleet_sink.close()

    app = FastAPI(
        title="Fleet Status",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await ws_manager.connect(websocket)
        try:
            while True:
                # Keep the connection alive; we don't expect client messages
                await websocket.receive_text()
        except WebSocketDisconnect:
            await ws_manager.disconnect(websocket)
        except Exception:
            await ws_manager.disconnect(websocket)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        log_level="info",
    )
