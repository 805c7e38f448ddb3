"""Main application entry-point for ev3-console."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from .client import CommandDispatchClient
from .config import ConsoleConfig, load_config
from .controls import TurretSession, VehicleSession
from .core import DeviceStatus
from .logging import configure_logging
from .notifications import NotificationLog
from .server import DashboardApi, DashboardServer
from .status import StatusReconciler
from .telemetry import RandomWalkSource, SampleSource, TelemetryFeed

LOGGER = logging.getLogger(__name__)


class DashboardApp:
    """Own the dashboard components for the lifetime of one session.

    One :class:`CommandDispatchClient` is built here and handed to every
    consumer; nothing reaches for a process-wide instance.
    """

    def __init__(
        self,
        config: Optional[ConsoleConfig] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        sample_source: Optional[SampleSource] = None,
    ) -> None:
        self._config = config or load_config()
        cfg = self._config

        self.notifications = NotificationLog()
        self.client = CommandDispatchClient(cfg.robot, session=session)
        self.reconciler = StatusReconciler(
            self.client, interval_seconds=cfg.status.poll_interval_seconds
        )
        self.vehicle = VehicleSession(
            self.client,
            notifier=self.notifications,
            speed_percent=cfg.controls.vehicle_speed_percent,
            feedback_seconds=cfg.controls.vehicle_feedback_seconds,
        )
        self.turret = TurretSession(
            self.client,
            notifier=self.notifications,
            speed_percent=cfg.controls.turret_speed_percent,
            feedback_seconds=cfg.controls.turret_feedback_seconds,
        )

        self.telemetry: Optional[TelemetryFeed] = None
        if cfg.telemetry.enabled:
            source = sample_source or RandomWalkSource(cfg.telemetry.origin)
            self.telemetry = TelemetryFeed(
                source,
                trail_capacity=cfg.telemetry.trail_capacity,
                terrain_capacity=cfg.telemetry.terrain_capacity,
                interval_seconds=cfg.telemetry.sample_interval_seconds,
            )
            if isinstance(source, RandomWalkSource):
                self.telemetry.ingest(source.seed_samples())

        self.api = DashboardApi(
            client=self.client,
            reconciler=self.reconciler,
            vehicle=self.vehicle,
            turret=self.turret,
            notifications=self.notifications,
            telemetry=self.telemetry,
        )
        self._server: Optional[DashboardServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def config(self) -> ConsoleConfig:
        return self._config

    async def run(self) -> None:
        """Start every component and wait until :meth:`request_shutdown`."""

        self._shutdown_event = asyncio.Event()
        LOGGER.info("ev3-console starting with config: %s", self._config.path)

        try:
            await self._start_services()
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("ev3-console received shutdown signal")
            raise
        finally:
            await self._stop_services()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def _start_services(self) -> None:
        self.reconciler.subscribe(self._log_status_change)
        self.reconciler.start()

        if self.telemetry is not None:
            self.telemetry.start()

        server_cfg = self._config.server
        self._server = DashboardServer(self.api, server_cfg.host, server_cfg.port)
        await self._server.start()

    async def _stop_services(self) -> None:
        if self._server is not None:
            await self._server.stop()
            self._server = None

        if self.telemetry is not None:
            await self.telemetry.stop()

        await self.reconciler.stop()
        self.reconciler.unsubscribe(self._log_status_change)
        await self.vehicle.aclose()
        await self.turret.aclose()
        await self.client.aclose()
        LOGGER.info("ev3-console stopped")

    def _log_status_change(self, status: DeviceStatus) -> None:
        LOGGER.debug(
            "Brick %s, battery %s%%, %d motors, %d sensors",
            "connected" if status.connected else "disconnected",
            status.battery_percent,
            len(status.motors),
            len(status.sensors),
        )

    @classmethod
    def start(cls, config: Optional[ConsoleConfig] = None) -> None:
        resolved = config or load_config()
        configure_logging(
            resolved.logging.level,
            log_path=resolved.logging.path,
            log_network=resolved.logging.log_network,
        )
        instance = cls(config=resolved)
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("ev3-console received shutdown signal")
