import asyncio
from collections import defaultdict, deque
from typing import Any, Deque, Dict, Optional

import pytest

from ev3_console.core import Command, CommandResult, ConnectionState, ErrorKind


class ScriptedSender:
    """In-memory stand-in for the dispatch client.

    Results are queued per command name; unqueued commands succeed. A command
    name can be held so its dispatch stays in flight until released.
    """

    def __init__(self) -> None:
        self.sent: list[Command] = []
        self.connection_state = ConnectionState.DISCONNECTED
        self.last_error: Optional[str] = None
        self._results: Dict[str, Deque[CommandResult]] = defaultdict(deque)
        self._gates: Dict[str, asyncio.Event] = {}

    def queue(self, kind: str, *results: CommandResult) -> None:
        self._results[kind].extend(results)

    def hold(self, kind: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[kind] = gate
        return gate

    def release(self, kind: str) -> None:
        gate = self._gates.pop(kind, None)
        if gate is not None:
            gate.set()

    def sent_kinds(self) -> list[str]:
        return [command.kind for command in self.sent]

    async def send(self, command: Command) -> CommandResult:
        self.sent.append(command)
        gate = self._gates.get(command.kind)
        if gate is not None:
            await gate.wait()

        queued = self._results.get(command.kind)
        result = queued.popleft() if queued else CommandResult.ok(command=command.kind)

        if result.success or result.error_kind is ErrorKind.APPLICATION:
            self.connection_state = ConnectionState.CONNECTED
        elif result.error_kind is ErrorKind.PROTOCOL:
            self.connection_state = ConnectionState.ERROR
        else:
            self.connection_state = ConnectionState.DISCONNECTED
        self.last_error = result.error_message
        return result


@pytest.fixture
def sender() -> ScriptedSender:
    return ScriptedSender()


@pytest.fixture
def device_info() -> Dict[str, Any]:
    return {
        "battery": {"percentage": 87, "voltage_v": 7.9},
        "cpu_usage_percent": 12.5,
        "kernel": "4.14.117-ev3dev-2.3.5-ev3",
        "ip_addresses": ["192.168.1.42", "10.0.0.5"],
        "motors": {
            "left_motor": {
                "port": "outB",
                "available": True,
                "angle_degrees": 360,
                "speed_deg_per_sec": 0,
                "stalled": False,
            },
            "turret_motor": {
                "port": "outA",
                "available": False,
            },
        },
        "sensors": {
            "ultrasonic": {"port": "in4", "available": True, "distance_cm": 23.456},
            "gyro": {
                "port": "in2",
                "available": True,
                "angle_degrees": 90.0,
                "speed_deg_per_sec": -3,
            },
            "pixy_camera": {"port": "in1", "available": False},
        },
    }
