"""End-to-end tests for the operator HTTP API against a stub robot endpoint."""

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestClient, TestServer

from ev3_console.app import DashboardApp
from ev3_console.config import apply_overrides, load_config
from ev3_console.controls import SessionState


class RobotStub:
    def __init__(self, device_info: Dict[str, Any]) -> None:
        self.device_info = device_info
        self.received: List[Dict[str, Any]] = []
        self.replies: Dict[str, Tuple[int, Dict[str, Any]]] = {}

    def commands(self) -> List[str]:
        return [item["command"] for item in self.received]

    async def handle(self, request: web.Request) -> web.StreamResponse:
        body = await request.json()
        self.received.append(body)
        name = body["command"]
        if name in self.replies:
            status, payload = self.replies[name]
            return web.json_response(payload, status=status)
        payload: Dict[str, Any] = {"success": True, "command": name}
        if name == "get_status":
            payload["result"] = {"device_info": self.device_info}
        return web.json_response(payload)


@pytest_asyncio.fixture
async def dashboard(tmp_path: Path, device_info):
    robot = RobotStub(device_info)
    robot_app = web.Application()
    robot_app.router.add_post("/controlRobot", robot.handle)

    async with TestServer(robot_app) as robot_server:
        config = load_config(tmp_path / "ev3-console.cfg")
        apply_overrides(
            config,
            endpoint_url=str(robot_server.make_url("/controlRobot")),
            api_key="test-key",
        )
        config.controls.vehicle_feedback_seconds = 0.05
        config.controls.turret_feedback_seconds = 0.05

        app = DashboardApp(config)
        client = TestClient(TestServer(app.api.build_application()))
        await client.start_server()

        yield app, client, robot

        await client.close()
        await app.vehicle.aclose()
        await app.turret.aclose()
        await app.client.aclose()


@pytest.mark.asyncio
async def test_health_reflects_connection_state(dashboard):
    app, client, robot = dashboard

    response = await client.get("/healthz")
    assert response.status == 503
    assert (await response.json())["connection"] == "disconnected"

    await client.post("/api/status/refresh")

    response = await client.get("/healthz")
    assert response.status == 200
    payload = await response.json()
    assert payload["connection"] == "connected"
    assert payload["lastError"] is None


@pytest.mark.asyncio
async def test_status_refresh_returns_normalized_device(dashboard):
    app, client, robot = dashboard

    response = await client.post("/api/status/refresh")
    payload = await response.json()

    assert response.status == 200
    assert payload["skipped"] is False
    device = payload["device"]
    assert device["connected"] is True
    assert device["batteryPercent"] == 87
    assert robot.commands() == ["get_status"]

    cached = await (await client.get("/api/status")).json()
    assert cached["device"] == device


@pytest.mark.asyncio
async def test_vehicle_move_dispatches_scaled_speed(dashboard):
    app, client, robot = dashboard

    response = await client.post(
        "/api/vehicle/move", json={"direction": "left", "speed": 100}
    )
    payload = await response.json()

    assert response.status == 200
    assert payload["result"]["success"] is True
    assert payload["session"]["state"] == "active"
    assert robot.received == [
        {"command": "left", "params": {"speed": 1200, "duration": 0}}
    ]

    await asyncio.sleep(0.1)
    assert app.vehicle.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_vehicle_move_rejected_while_active(dashboard):
    app, client, robot = dashboard

    await client.post("/api/vehicle/move", json={"direction": "forward"})
    response = await client.post("/api/vehicle/move", json={"direction": "backward"})

    assert response.status == 409
    assert (await response.json())["error"] == "Vehicle is busy"
    assert robot.commands() == ["forward"]


@pytest.mark.asyncio
async def test_vehicle_move_validates_input(dashboard):
    app, client, robot = dashboard

    bad_direction = await client.post("/api/vehicle/move", json={"direction": "up"})
    bad_speed = await client.post(
        "/api/vehicle/move", json={"direction": "forward", "speed": 500}
    )
    turret_forward = await client.post(
        "/api/turret/rotate", json={"direction": "forward"}
    )

    assert bad_direction.status == 400
    assert bad_speed.status == 400
    assert turret_forward.status == 400
    assert robot.received == []


@pytest.mark.asyncio
async def test_failed_motion_reports_bad_gateway(dashboard):
    app, client, robot = dashboard
    robot.replies["turret_left"] = (500, {"error": "turret jammed"})

    response = await client.post("/api/turret/rotate", json={"direction": "left"})
    payload = await response.json()

    assert response.status == 502
    assert payload["result"]["error"] == "turret jammed"
    assert payload["session"]["state"] == "idle"

    notes = await (await client.get("/api/notifications")).json()
    assert notes["notifications"][-1]["text"] == (
        "Failed to control turret: turret jammed"
    )


@pytest.mark.asyncio
async def test_stop_endpoints_always_dispatch(dashboard):
    app, client, robot = dashboard

    await client.post("/api/vehicle/move", json={"direction": "forward"})
    vehicle_stop = await client.post("/api/vehicle/stop")
    turret_stop = await client.post("/api/turret/stop")

    assert vehicle_stop.status == 200
    assert turret_stop.status == 200
    assert robot.commands() == ["forward", "stop", "stop_turret"]
    assert app.vehicle.state is SessionState.IDLE


@pytest.mark.asyncio
async def test_turret_scan_toggle(dashboard):
    app, client, robot = dashboard

    started = await client.post("/api/turret/scan", json={"enabled": True})
    assert started.status == 200
    assert (await started.json())["session"]["scanMode"] is True
    assert robot.received == []

    stopped = await client.post("/api/turret/scan", json={"enabled": False})
    payload = await stopped.json()
    assert payload["session"]["scanMode"] is False
    assert payload["result"]["success"] is True
    assert robot.commands() == ["stop_turret"]

    invalid = await client.post("/api/turret/scan", json={"enabled": "yes"})
    assert invalid.status == 400


@pytest.mark.asyncio
async def test_speak_validation_and_notifications(dashboard):
    app, client, robot = dashboard

    empty = await client.post("/api/speak", json={"text": "   "})
    too_long = await client.post("/api/speak", json={"text": "x" * 501})
    spoken = await client.post("/api/speak", json={"text": "Hello operator"})

    assert empty.status == 400
    assert too_long.status == 400
    assert spoken.status == 200
    assert robot.received == [
        {"command": "speak", "params": {"text": "Hello operator"}}
    ]

    texts = [entry.text for entry in app.notifications.entries()]
    assert texts[0] == "Please enter text to speak"
    assert texts[-1] == 'Speaking: "Hello operator"'


@pytest.mark.asyncio
async def test_speak_failure_notifies(dashboard):
    app, client, robot = dashboard
    robot.replies["speak"] = (200, {"success": False, "error": "no speaker"})

    response = await client.post("/api/speak", json={"text": "hi"})

    assert response.status == 502
    assert app.notifications.entries()[-1].text == "Failed to send speech command"


@pytest.mark.asyncio
async def test_telemetry_snapshot_and_toggle(dashboard):
    app, client, robot = dashboard

    snapshot = await (await client.get("/api/telemetry")).json()
    assert len(snapshot["trail"]["samples"]) == 1
    assert len(snapshot["terrain"]["samples"]) == 3
    assert snapshot["terrain"]["capacity"] == 50

    response = await client.post("/api/telemetry/terrain", json={"enabled": False})
    payload = await response.json()
    assert payload["enabled"] is False
    assert payload["samples"] == []

    unknown = await client.post("/api/telemetry/sonar", json={"enabled": True})
    assert unknown.status == 404

    invalid = await client.post("/api/telemetry/trail", json={})
    assert invalid.status == 400


@pytest.mark.asyncio
async def test_controls_snapshot(dashboard):
    app, client, robot = dashboard

    payload = await (await client.get("/api/controls")).json()

    assert payload["vehicle"] == {
        "actuator": "vehicle",
        "state": "idle",
        "direction": None,
        "speedPercent": 50,
    }
    assert payload["turret"]["speedPercent"] == 30
    assert payload["turret"]["estimatedAngle"] == 0


@pytest.mark.asyncio
async def test_rejected_direction_leaves_speed_unchanged(dashboard):
    app, client, robot = dashboard

    missing = await client.post("/api/vehicle/move", json={"speed": 90})
    unknown = await client.post(
        "/api/turret/rotate", json={"direction": "forward", "speed": 90}
    )

    assert missing.status == 400
    assert unknown.status == 400
    assert app.vehicle.speed_percent == 50
    assert app.turret.speed_percent == 30
    assert robot.received == []
