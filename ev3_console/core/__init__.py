"""Core primitives for ev3-console."""

from .models import (
    UNKNOWN,
    Command,
    CommandError,
    CommandResult,
    ConnectionState,
    DeviceStatus,
    ErrorKind,
    MotorState,
    SensorKind,
    SensorState,
)
from .protocols import CommandSender, Notifier, StatusCallback

__all__ = [
    "UNKNOWN",
    "Command",
    "CommandError",
    "CommandResult",
    "CommandSender",
    "ConnectionState",
    "DeviceStatus",
    "ErrorKind",
    "MotorState",
    "Notifier",
    "SensorKind",
    "SensorState",
    "StatusCallback",
]
