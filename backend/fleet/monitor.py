"""
Fleet Monitor: runs poll cycles on an interval and publishes the results.

Keeps the latest ClusterSnapshot for the API, evaluates alerts for each
cycle and forwards both to registered event callbacks.
"""

import asyncio
import logging
from datetime import datetime

from fleet.alerts import evaluate_alerts
from fleet.models import Alert, ClusterSnapshot
from fleet.poller import FleetPoller

logger = logging.getLogger(__name__)


class FleetMonitor:
    """Background polling loop around a FleetPoller."""

    def __init__(self, poller: FleetPoller) -> None:
        self._poller = poller
        self._latest: ClusterSnapshot | None = None
        self._alerts: list[Alert] = []
        self._cycle_lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None
        self._event_callbacks: list = []  # async fn(event_type, data)

    @property
    def latest(self) -> ClusterSnapshot | None:
        return self._latest

    @property
    def alerts(self) -> list[Alert]:
        return list(self._alerts)

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def on_event(self, callback) -> None:
        """Register callback: async fn(event_type: str, data: dict)."""
        self._event_callbacks.append(callback)

    async def _emit(self, event_type: str, data: dict) -> None:
        for cb in self._event_callbacks:
            try:
                await cb(event_type, data)
            except Exception as e:
                logger.error(f"Event callback error: {e}")

    async def start(self) -> None:
        interval = self._poller.settings.refresh_interval
        logger.info(f"Starting fleet monitor (every {interval}s)")
        self._loop_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        logger.info("Fleet monitor stopped")

    async def refresh(self) -> ClusterSnapshot:
        """Run one cycle now. Concurrent callers share the lock, not the cycle."""
        async with self._cycle_lock:
            cluster = await self._poller.poll_cluster()
            self._latest = cluster

            local_now = datetime.now().astimezone()
            alerts: list[Alert] = []
            for snapshot in cluster.servers.values():
                alerts.extend(evaluate_alerts(snapshot, self._poller.settings, local_now))
            self._alerts = alerts

        await self._emit("cluster_snapshot", cluster.model_dump(mode="json"))
        for alert in alerts:
            logger.warning(f"[{alert.type}] {alert.message}")
            await self._emit("alert", alert.model_dump(mode="json"))
        return cluster

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f"Monitoring cycle failed: {e}", exc_info=True)
            await asyncio.sleep(self._poller.settings.refresh_interval)
