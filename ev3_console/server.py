"""Operator HTTP API exposing the dashboard core as JSON endpoints."""

from __future__ import annotations

import contextlib
import logging
from typing import Any, Dict, Optional

from aiohttp import web

from .client import CommandDispatchClient, CommandValidationError
from .controls import ControlSession, TurretSession
from .core import CommandResult, ConnectionState
from .notifications import NotificationLog
from .status import StatusReconciler
from .telemetry import TelemetryFeed

LOGGER = logging.getLogger(__name__)


class DashboardApi:
    """Route handlers bound to the running dashboard components."""

    def __init__(
        self,
        *,
        client: CommandDispatchClient,
        reconciler: StatusReconciler,
        vehicle: ControlSession,
        turret: TurretSession,
        notifications: NotificationLog,
        telemetry: Optional[TelemetryFeed] = None,
    ) -> None:
        self._client = client
        self._reconciler = reconciler
        self._vehicle = vehicle
        self._turret = turret
        self._notifications = notifications
        self._telemetry = telemetry

    def build_application(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)
        app.router.add_get("/api/status", self._handle_status)
        app.router.add_post("/api/status/refresh", self._handle_status_refresh)
        app.router.add_get("/api/controls", self._handle_controls)
        app.router.add_post("/api/vehicle/move", self._handle_vehicle_move)
        app.router.add_post("/api/vehicle/stop", self._handle_vehicle_stop)
        app.router.add_post("/api/turret/rotate", self._handle_turret_rotate)
        app.router.add_post("/api/turret/stop", self._handle_turret_stop)
        app.router.add_post("/api/turret/scan", self._handle_turret_scan)
        app.router.add_post("/api/speak", self._handle_speak)
        app.router.add_get("/api/telemetry", self._handle_telemetry)
        app.router.add_post("/api/telemetry/{channel}", self._handle_telemetry_toggle)
        app.router.add_get("/api/notifications", self._handle_notifications)
        return app

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------
    async def _handle_health(self, request: web.Request) -> web.Response:
        state = self._client.connection_state
        payload = {
            "connection": state.value,
            "lastError": self._client.last_error,
            "lastUpdate": self._reconciler.status.last_update.isoformat(
                timespec="seconds"
            ),
        }
        status = 200 if state is ConnectionState.CONNECTED else 503
        return web.json_response(payload, status=status)

    async def _handle_status(self, request: web.Request) -> web.Response:
        return web.json_response(self._status_payload())

    async def _handle_status_refresh(self, request: web.Request) -> web.Response:
        polled = await self._reconciler.poll_once()
        payload = self._status_payload()
        payload["skipped"] = not polled
        return web.json_response(payload)

    def _status_payload(self) -> Dict[str, Any]:
        return {
            "connection": self._client.connection_state.value,
            "lastError": self._client.last_error,
            "device": self._reconciler.status.as_dict(),
        }

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------
    async def _handle_controls(self, request: web.Request) -> web.Response:
        return web.json_response(
            {"vehicle": self._vehicle.as_dict(), "turret": self._turret.as_dict()}
        )

    async def _handle_vehicle_move(self, request: web.Request) -> web.Response:
        return await self._handle_motion(request, self._vehicle)

    async def _handle_turret_rotate(self, request: web.Request) -> web.Response:
        return await self._handle_motion(request, self._turret)

    async def _handle_vehicle_stop(self, request: web.Request) -> web.Response:
        result = await self._vehicle.emergency_stop()
        return _result_response(result, session=self._vehicle)

    async def _handle_turret_stop(self, request: web.Request) -> web.Response:
        result = await self._turret.emergency_stop()
        return _result_response(result, session=self._turret)

    async def _handle_motion(
        self, request: web.Request, session: ControlSession
    ) -> web.Response:
        body = await _read_json(request)
        direction = body.get("direction")
        try:
            session.device_speed(direction)
        except ValueError as exc:
            return _error_response(400, str(exc))

        speed = body.get("speed")
        if speed is not None:
            try:
                accepted = session.set_speed(int(speed))
            except (TypeError, ValueError) as exc:
                return _error_response(400, str(exc))
            if not accepted:
                return _busy_response(session)

        try:
            result = await session.request_motion(direction)
        except ValueError as exc:
            return _error_response(400, str(exc))

        if result is None:
            return _busy_response(session)
        return _result_response(result, session=session)

    async def _handle_turret_scan(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        enabled = body.get("enabled")
        if not isinstance(enabled, bool):
            return _error_response(400, "'enabled' must be a boolean")

        result = await self._turret.set_scan_mode(enabled)
        payload: Dict[str, Any] = {"session": self._turret.as_dict()}
        if result is not None:
            payload["result"] = result.as_dict()
        return web.json_response(payload)

    # ------------------------------------------------------------------
    # Speech
    # ------------------------------------------------------------------
    async def _handle_speak(self, request: web.Request) -> web.Response:
        body = await _read_json(request)
        text = body.get("text")
        if not isinstance(text, str) or not text.strip():
            self._notifications.error("Please enter text to speak")
            return _error_response(400, "Please enter text to speak")

        try:
            result = await self._client.speak(text)
        except CommandValidationError as exc:
            self._notifications.error(str(exc))
            return _error_response(400, str(exc))

        if result.success:
            self._notifications.success(f'Speaking: "{text}"')
        else:
            self._notifications.error("Failed to send speech command")
        return _result_response(result)

    # ------------------------------------------------------------------
    # Telemetry and notifications
    # ------------------------------------------------------------------
    async def _handle_telemetry(self, request: web.Request) -> web.Response:
        if self._telemetry is None:
            return _error_response(404, "Telemetry is disabled")
        return web.json_response(self._telemetry.as_dict())

    async def _handle_telemetry_toggle(self, request: web.Request) -> web.Response:
        if self._telemetry is None:
            return _error_response(404, "Telemetry is disabled")

        name = request.match_info["channel"]
        try:
            channel = self._telemetry.channel(name)
        except KeyError:
            return _error_response(404, f"Unknown telemetry channel: {name}")

        body = await _read_json(request)
        enabled = body.get("enabled")
        if not isinstance(enabled, bool):
            return _error_response(400, "'enabled' must be a boolean")

        channel.set_enabled(enabled)
        return web.json_response(channel.as_dict())

    async def _handle_notifications(self, request: web.Request) -> web.Response:
        entries = [entry.as_dict() for entry in self._notifications.entries()]
        return web.json_response({"notifications": entries})


class DashboardServer:
    """Serve :class:`DashboardApi` on a TCP socket."""

    def __init__(self, api: DashboardApi, host: str, port: int) -> None:
        self._api = api
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        self._runner = web.AppRunner(self._api.build_application())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        LOGGER.info("Dashboard API listening on http://%s:%s", self._host, self._port)

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None


async def _read_json(request: web.Request) -> Dict[str, Any]:
    if not request.can_read_body:
        return {}
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _result_response(
    result: CommandResult, *, session: Optional[ControlSession] = None
) -> web.Response:
    payload: Dict[str, Any] = {"result": result.as_dict()}
    if session is not None:
        payload["session"] = session.as_dict()
    return web.json_response(payload, status=200 if result.success else 502)


def _busy_response(session: ControlSession) -> web.Response:
    return web.json_response(
        {
            "error": f"{session.profile.label} is busy",
            "session": session.as_dict(),
        },
        status=409,
    )


def _error_response(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)
