"""Status polling and sticky reconciliation of brick device information.

The brick reports its state through the ``get_status`` command. Replies are
heterogeneous: a reply may carry a full ``result.device_info`` payload, a
bare acknowledgement, or nothing at all when the endpoint is unreachable.

Merge rules applied on every poll:
- full payload: motors and sensors are rebuilt and scalar fields overwritten
- success without payload: only ``connected`` and ``last_update`` change
- any failure: ``connected`` becomes false, ``last_update`` changes, every
  device-derived field keeps its last known value
"""

from __future__ import annotations

import asyncio
import contextlib
import copy
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from .command_names import RobotCommandNames
from .core import (
    UNKNOWN,
    Command,
    CommandResult,
    CommandSender,
    ConnectionState,
    DeviceStatus,
    ErrorKind,
    MotorState,
    SensorKind,
    SensorState,
    StatusCallback,
)

LOGGER = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"


@dataclass(slots=True)
class DeviceReadings:
    """Typed view of one ``device_info`` payload."""

    battery_percent: float = 0
    battery_voltage: float = 0
    cpu_percent: float = 0
    kernel_version: str = UNKNOWN
    ip_address: str = UNKNOWN
    motors: Dict[str, MotorState] = field(default_factory=dict)
    sensors: Dict[str, SensorState] = field(default_factory=dict)


def normalize_device_info(raw: Mapping[str, Any]) -> DeviceReadings:
    """Convert a raw ``device_info`` mapping into typed readings.

    Missing or malformed values fall back to zero or ``"Unknown"``. Motors and
    sensors that report ``available: false`` are kept so the operator can see
    which devices are expected but offline.
    """

    battery = _as_mapping(raw.get("battery"))
    ip_addresses = raw.get("ip_addresses")
    ip_address = UNKNOWN
    if isinstance(ip_addresses, (list, tuple)) and ip_addresses:
        ip_address = _as_str(ip_addresses[0])

    return DeviceReadings(
        battery_percent=_as_number(battery.get("percentage")),
        battery_voltage=_as_number(battery.get("voltage_v")),
        cpu_percent=_as_number(raw.get("cpu_usage_percent")),
        kernel_version=_as_str(raw.get("kernel")),
        ip_address=ip_address,
        motors=_normalize_motors(_as_mapping(raw.get("motors"))),
        sensors=_normalize_sensors(_as_mapping(raw.get("sensors"))),
    )


def _normalize_motors(raw_motors: Mapping[str, Any]) -> Dict[str, MotorState]:
    motors: Dict[str, MotorState] = {}
    for motor_id, raw_motor in raw_motors.items():
        motor = _as_mapping(raw_motor)
        motors[str(motor_id)] = MotorState(
            id=str(motor_id),
            name=_display_name(str(motor_id)),
            port=_as_str(motor.get("port")),
            available=bool(motor.get("available")),
            angle_degrees=_as_number(motor.get("angle_degrees")),
            speed_deg_per_sec=_as_number(motor.get("speed_deg_per_sec")),
            stalled=bool(motor.get("stalled")),
        )
    return motors


def _normalize_sensors(raw_sensors: Mapping[str, Any]) -> Dict[str, SensorState]:
    sensors: Dict[str, SensorState] = {}

    if "ultrasonic" in raw_sensors:
        ultrasonic = _as_mapping(raw_sensors["ultrasonic"])
        available = bool(ultrasonic.get("available"))
        distance = _as_number(ultrasonic.get("distance_cm"))
        sensors["ultrasonic"] = SensorState(
            id="ultrasonic",
            name="Ultrasonic Sensor",
            kind=SensorKind.DISTANCE,
            port=_as_str(ultrasonic.get("port")),
            available=available,
            value=f"{distance:.1f} cm" if available else NOT_AVAILABLE,
        )

    if "gyro" in raw_sensors:
        gyro = _as_mapping(raw_sensors["gyro"])
        available = bool(gyro.get("available"))
        angle = _format_number(_as_number(gyro.get("angle_degrees")))
        rate = _format_number(_as_number(gyro.get("speed_deg_per_sec")))
        sensors["gyro"] = SensorState(
            id="gyro",
            name="Gyro Sensor",
            kind=SensorKind.ANGLE,
            port=_as_str(gyro.get("port")),
            available=available,
            value=f"{angle}° ({rate}°/s)" if available else NOT_AVAILABLE,
        )

    if "pixy_camera" in raw_sensors:
        pixy = _as_mapping(raw_sensors["pixy_camera"])
        available = bool(pixy.get("available"))
        sensors["pixy_camera"] = SensorState(
            id="pixy_camera",
            name="Pixy Camera",
            kind=SensorKind.CAMERA,
            port=_as_str(pixy.get("port")),
            available=available,
            value="Active" if available else NOT_AVAILABLE,
        )

    return sensors


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return 0
    return 0


def _as_str(value: Any) -> str:
    if value is None or value == "":
        return UNKNOWN
    return str(value)


def _format_number(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _display_name(device_id: str) -> str:
    return device_id.replace("_", " ").title()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StatusReconciler:
    """Poll ``get_status`` on a fixed cadence and keep a sticky snapshot.

    Ticks fire every ``interval_seconds`` regardless of how long a poll takes.
    A tick that lands while the previous poll is still outstanding is dropped.
    After :meth:`stop`, a reply that was already in flight is discarded.
    """

    def __init__(
        self,
        client: CommandSender,
        *,
        interval_seconds: float = 5.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._interval = max(interval_seconds, 0.01)
        self._clock = clock
        self._status = DeviceStatus(last_update=clock())
        self._subscribers: list[StatusCallback] = []
        self._in_flight_run: Optional[int] = None
        # Bumped by stop() so polls from an earlier run are discarded.
        self._run = 0
        self._torn_down = False
        self._stop_event = asyncio.Event()
        self._ticker_task: Optional[asyncio.Task[None]] = None
        self._poll_tasks: set[asyncio.Task[bool]] = set()

    @property
    def status(self) -> DeviceStatus:
        return self._status

    @property
    def is_polling(self) -> bool:
        return self._in_flight_run == self._run

    @property
    def is_running(self) -> bool:
        return self._ticker_task is not None

    def subscribe(self, callback: StatusCallback) -> None:
        if callback in self._subscribers:
            raise ValueError("Callback already registered")
        self._subscribers.append(callback)

    def unsubscribe(self, callback: StatusCallback) -> None:
        with contextlib.suppress(ValueError):
            self._subscribers.remove(callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Poll immediately, then once per interval until :meth:`stop`."""

        if self._ticker_task is not None:
            return

        self._torn_down = False
        self._stop_event.clear()
        self._ticker_task = asyncio.create_task(self._tick_loop())

    async def stop(self) -> None:
        self._torn_down = True
        self._run += 1
        self._stop_event.set()

        if self._ticker_task is not None:
            self._ticker_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._ticker_task
            self._ticker_task = None

    async def _tick_loop(self) -> None:
        while not self._stop_event.is_set():
            self._spawn_poll()

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
                break
            except asyncio.TimeoutError:
                continue

    def _spawn_poll(self) -> None:
        if self.is_polling:
            LOGGER.debug("Skipping status tick; previous poll still outstanding")
            return

        task = asyncio.create_task(self.poll_once())
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------
    async def poll_once(self) -> bool:
        """Run one status query and merge it.

        Returns ``False`` when the poll was skipped because another one is
        outstanding, or when its reply arrived after teardown.
        """

        if self.is_polling:
            return False

        run = self._run
        self._in_flight_run = run
        try:
            result = await self._client.send(Command(RobotCommandNames.GET_STATUS))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            LOGGER.warning("Status query raised unexpectedly: %s", exc)
            result = CommandResult.failure(ErrorKind.TRANSPORT, str(exc))
        finally:
            if self._in_flight_run == run:
                self._in_flight_run = None

        if self._torn_down or run != self._run:
            LOGGER.debug("Discarding status reply received after shutdown")
            return False

        self.merge(result)
        await self._publish()
        return True

    def merge(self, result: CommandResult) -> DeviceStatus:
        """Fold one ``get_status`` result into the live snapshot."""

        status = self._status
        now = self._clock()

        if not result.success:
            LOGGER.debug(
                "Status poll failed (%s): %s; keeping last known device data",
                result.error_kind.value if result.error_kind else "unknown",
                result.error_message,
            )
            status.connected = False
            status.last_update = now
            return status

        connected = self._client.connection_state is ConnectionState.CONNECTED
        device_info = result.device_info

        if device_info is None:
            status.connected = connected
            status.last_update = now
            return status

        readings = normalize_device_info(device_info)
        status.connected = connected
        status.battery_percent = readings.battery_percent
        status.battery_voltage = readings.battery_voltage
        status.cpu_percent = readings.cpu_percent
        status.kernel_version = readings.kernel_version
        status.ip_address = readings.ip_address
        status.motors = readings.motors
        status.sensors = readings.sensors
        status.last_update = now

        LOGGER.debug(
            "Status refreshed: battery=%s%% motors=%d sensors=%d",
            readings.battery_percent,
            len(readings.motors),
            len(readings.sensors),
        )
        return status

    async def _publish(self) -> None:
        if not self._subscribers:
            return

        snapshot = copy.deepcopy(self._status)
        for callback in list(self._subscribers):
            try:
                outcome = callback(snapshot)
                if inspect.isawaitable(outcome):
                    await outcome
            except asyncio.CancelledError:
                raise
            except Exception:
                LOGGER.exception("Status subscriber %r failed", callback)
