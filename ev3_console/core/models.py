"""Domain models for robot commands and device status."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

UNKNOWN = "Unknown"


class ConnectionState(str, Enum):
    """Outcome of the most recent dispatch to the robot endpoint."""

    CONNECTED = "connected"
    """The endpoint answered with a success status."""

    DISCONNECTED = "disconnected"
    """No response was received at all."""

    ERROR = "error"
    """The endpoint answered with a non-success status."""


class ErrorKind(str, Enum):
    """Failure categories that are reported in a result instead of raised."""

    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    APPLICATION = "application"


@dataclass(frozen=True, slots=True)
class Command:
    kind: str
    params: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        if not self.kind:
            raise ValueError("Command kind cannot be empty")
        if self.params is not None:
            object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    def envelope(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"command": self.kind}
        if self.params is not None:
            payload["params"] = dict(self.params)
        return payload


@dataclass(frozen=True, slots=True)
class CommandError:
    kind: ErrorKind
    message: str


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Tagged outcome of a single dispatch.

    ``success`` is the tag: success results carry the response payload,
    failure results carry a :class:`CommandError`. Build instances through the
    ``ok``/``failure``/``from_envelope`` constructors.
    """

    success: bool
    command: Optional[str] = None
    result: Any = None
    message: Optional[str] = None
    timestamp: Optional[str] = None
    error: Optional[CommandError] = None

    def __post_init__(self) -> None:
        if self.success and self.error is not None:
            raise ValueError("Successful results cannot carry an error")
        if not self.success and self.error is None:
            raise ValueError("Failed results must carry an error")

    @classmethod
    def ok(
        cls,
        *,
        command: Optional[str] = None,
        result: Any = None,
        message: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> "CommandResult":
        return cls(
            success=True,
            command=command,
            result=result,
            message=message,
            timestamp=timestamp,
        )

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        *,
        command: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> "CommandResult":
        return cls(
            success=False,
            command=command,
            timestamp=timestamp,
            error=CommandError(kind=kind, message=message),
        )

    @classmethod
    def from_envelope(cls, payload: Any) -> "CommandResult":
        """Validate a decoded response body from a 2xx reply."""

        if not isinstance(payload, dict):
            return cls.failure(
                ErrorKind.PROTOCOL,
                f"Unexpected response body: {type(payload).__name__}",
            )

        command = _optional_str(payload.get("command"))
        timestamp = _optional_str(payload.get("timestamp"))
        message = _optional_str(payload.get("message"))

        if payload.get("success") is True:
            return cls.ok(
                command=command,
                result=payload.get("result"),
                message=message,
                timestamp=timestamp,
            )

        reason = _optional_str(payload.get("error")) or message or "Command failed"
        return cls.failure(
            ErrorKind.APPLICATION, reason, command=command, timestamp=timestamp
        )

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error is not None else None

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @property
    def device_info(self) -> Optional[Dict[str, Any]]:
        """Return ``result.device_info`` when a status reply carries one."""

        if not self.success or not isinstance(self.result, dict):
            return None
        info = self.result.get("device_info")
        return info if isinstance(info, dict) else None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success}
        if self.command is not None:
            payload["command"] = self.command
        if self.success:
            if self.result is not None:
                payload["result"] = self.result
            if self.message is not None:
                payload["message"] = self.message
        else:
            payload["error"] = self.error_message
            payload["errorKind"] = self.error_kind.value if self.error_kind else None
        if self.timestamp is not None:
            payload["timestamp"] = self.timestamp
        return payload


class SensorKind(str, Enum):
    DISTANCE = "distance"
    ANGLE = "angle"
    CAMERA = "camera"


@dataclass(slots=True)
class MotorState:
    id: str
    name: str
    port: str = UNKNOWN
    available: bool = False
    angle_degrees: float = 0
    speed_deg_per_sec: float = 0
    stalled: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "port": self.port,
            "available": self.available,
            "angleDegrees": self.angle_degrees,
            "speedDegPerSec": self.speed_deg_per_sec,
            "stalled": self.stalled,
        }


@dataclass(slots=True)
class SensorState:
    id: str
    name: str
    kind: SensorKind
    port: str = UNKNOWN
    available: bool = False
    value: str = "N/A"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind.value,
            "port": self.port,
            "available": self.available,
            "value": self.value,
        }


@dataclass(slots=True)
class DeviceStatus:
    connected: bool = False
    battery_percent: float = 0
    battery_voltage: float = 0
    cpu_percent: float = 0
    kernel_version: str = UNKNOWN
    ip_address: str = UNKNOWN
    motors: Dict[str, MotorState] = field(default_factory=dict)
    sensors: Dict[str, SensorState] = field(default_factory=dict)
    last_update: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "batteryPercent": self.battery_percent,
            "batteryVoltage": self.battery_voltage,
            "cpuPercent": self.cpu_percent,
            "kernelVersion": self.kernel_version,
            "ipAddress": self.ip_address,
            "motors": [motor.as_dict() for motor in self.motors.values()],
            "sensors": [sensor.as_dict() for sensor in self.sensors.values()],
            "lastUpdate": self.last_update.isoformat(timespec="seconds"),
        }


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)
