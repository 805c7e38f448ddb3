"""Per-actuator control sessions for the vehicle drive train and the turret.

Each session is a small state machine::

    idle -> pending -> active -> idle

``pending`` covers the dispatch itself, ``active`` the visual-feedback window
that follows a successful command. The window is a fixed per-actuator delay
and does not track how long the brick actually runs the motor. Ordinary motion
requests are refused while the session is not idle; emergency stops are
always accepted.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional, Union

from . import constants
from .command_names import RobotCommandNames
from .core import Command, CommandResult, CommandSender, Notifier
from .notifications import NotificationLog

LOGGER = logging.getLogger(__name__)

VEHICLE_FEEDBACK_SECONDS = 1.0
TURRET_FEEDBACK_SECONDS = 0.8

DRIVE_SPEED_FACTOR = 1.0
TURN_SPEED_FACTOR = 0.6
TURRET_SPEED_FACTOR = 0.3


class SessionState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    ACTIVE = "active"


class Direction(str, Enum):
    FORWARD = "forward"
    BACKWARD = "backward"
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True, slots=True)
class MotionSpec:
    command: str
    speed_factor: float


@dataclass(frozen=True, slots=True)
class ActuatorProfile:
    """Static description of one actuator's commands and timings."""

    name: str
    label: str
    verb: str
    motions: Mapping[Direction, MotionSpec]
    stop_command: str
    duration: float
    feedback_seconds: float


def vehicle_profile(
    feedback_seconds: float = VEHICLE_FEEDBACK_SECONDS,
) -> ActuatorProfile:
    return ActuatorProfile(
        name="vehicle",
        label="Vehicle",
        verb="moving",
        motions={
            Direction.FORWARD: MotionSpec(
                RobotCommandNames.FORWARD, DRIVE_SPEED_FACTOR
            ),
            Direction.BACKWARD: MotionSpec(
                RobotCommandNames.BACKWARD, DRIVE_SPEED_FACTOR
            ),
            Direction.LEFT: MotionSpec(RobotCommandNames.LEFT, TURN_SPEED_FACTOR),
            Direction.RIGHT: MotionSpec(RobotCommandNames.RIGHT, TURN_SPEED_FACTOR),
        },
        stop_command=RobotCommandNames.STOP,
        duration=0,
        feedback_seconds=feedback_seconds,
    )


def turret_profile(
    feedback_seconds: float = TURRET_FEEDBACK_SECONDS,
) -> ActuatorProfile:
    return ActuatorProfile(
        name="turret",
        label="Turret",
        verb="rotating",
        motions={
            Direction.LEFT: MotionSpec(
                RobotCommandNames.TURRET_LEFT, TURRET_SPEED_FACTOR
            ),
            Direction.RIGHT: MotionSpec(
                RobotCommandNames.TURRET_RIGHT, TURRET_SPEED_FACTOR
            ),
        },
        stop_command=RobotCommandNames.STOP_TURRET,
        duration=constants.DEFAULT_TURRET_DURATION,
        feedback_seconds=feedback_seconds,
    )


def validate_speed_percent(percent: int) -> int:
    if not constants.MIN_SPEED_PERCENT <= percent <= constants.MAX_SPEED_PERCENT:
        raise ValueError(
            f"Speed must be between {constants.MIN_SPEED_PERCENT} and "
            f"{constants.MAX_SPEED_PERCENT} percent, got {percent}"
        )
    return percent


def scale_speed(percent: int, factor: float = DRIVE_SPEED_FACTOR) -> int:
    """Convert a slider percentage into device speed units."""

    validate_speed_percent(percent)
    return math.floor(percent / 100 * constants.MAX_SPEED * factor)


class ControlSession:
    """Serialize motion commands for a single actuator."""

    def __init__(
        self,
        client: CommandSender,
        profile: ActuatorProfile,
        *,
        notifier: Optional[Notifier] = None,
        speed_percent: int = 50,
    ) -> None:
        self._client = client
        self._profile = profile
        self._notifier: Notifier = notifier or NotificationLog()
        self._speed_percent = validate_speed_percent(speed_percent)
        self._state = SessionState.IDLE
        self._direction: Optional[Direction] = None
        self._release_task: Optional[asyncio.Task[None]] = None
        # Bumped by stops and teardown so late motion replies are ignored.
        self._generation = 0
        self._closed = False

    @property
    def profile(self) -> ActuatorProfile:
        return self._profile

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def direction(self) -> Optional[Direction]:
        return self._direction

    @property
    def speed_percent(self) -> int:
        return self._speed_percent

    @property
    def is_busy(self) -> bool:
        return self._state is not SessionState.IDLE

    def set_speed(self, percent: int) -> bool:
        """Update the speed slider. Returns ``False`` while a motion is underway."""

        validate_speed_percent(percent)
        if self.is_busy:
            return False
        self._speed_percent = percent
        return True

    def device_speed(self, direction: Union[Direction, str]) -> int:
        motion = self._motion_for(direction)
        return scale_speed(self._speed_percent, motion.speed_factor)

    # ------------------------------------------------------------------
    # Motion
    # ------------------------------------------------------------------
    async def request_motion(
        self, direction: Union[Direction, str]
    ) -> Optional[CommandResult]:
        """Dispatch a motion command if the session is idle.

        Returns ``None`` without contacting the endpoint when the request is
        refused because another command is pending or active.
        """

        motion = self._motion_for(direction)
        direction = Direction(direction)

        if self._closed:
            LOGGER.debug(
                "%s session closed; ignoring %s", self._profile.name, direction.value
            )
            return None

        if self._state is not SessionState.IDLE:
            LOGGER.info(
                "%s busy (%s %s); rejecting %s",
                self._profile.label,
                self._state.value,
                self._direction.value if self._direction else "-",
                direction.value,
            )
            return None

        speed = scale_speed(self._speed_percent, motion.speed_factor)
        generation = self._generation
        self._state = SessionState.PENDING
        self._direction = direction

        LOGGER.info(
            "%s %s at speed %d (%d%%)",
            self._profile.label,
            direction.value,
            speed,
            self._speed_percent,
        )

        command = Command(
            motion.command, {"speed": speed, "duration": self._profile.duration}
        )
        try:
            result = await self._client.send(command)
        except Exception:
            if generation == self._generation and not self._closed:
                self._reset()
            raise

        if self._closed or generation != self._generation:
            LOGGER.debug(
                "Discarding %s reply; %s session was stopped meanwhile",
                motion.command,
                self._profile.name,
            )
            return result

        if result.success:
            self._state = SessionState.ACTIVE
            self._on_motion_succeeded(direction)
            self._notifier.success(
                f"{self._profile.label} {self._profile.verb} {direction.value}"
            )
            self._schedule_release(generation)
        else:
            self._reset()
            self._notifier.error(
                f"Failed to control {self._profile.name}: {result.error_message}"
            )

        return result

    async def emergency_stop(self) -> CommandResult:
        """Send the stop command now, whatever the session is doing."""

        self._generation += 1
        generation = self._generation
        self._cancel_release()
        self._state = SessionState.PENDING
        self._direction = None

        LOGGER.info("%s emergency stop", self._profile.label)

        try:
            result = await self._client.send(Command(self._profile.stop_command))
        except Exception:
            if generation == self._generation and not self._closed:
                self._reset()
            raise

        if self._closed or generation != self._generation:
            return result

        self._reset()
        if result.success:
            self._on_stopped()
            self._notifier.success(f"{self._profile.label} stopped")
        else:
            self._notifier.error(
                f"Failed to stop {self._profile.name}: {result.error_message}"
            )
        return result

    # ------------------------------------------------------------------
    # Hooks for subclasses
    # ------------------------------------------------------------------
    def _on_motion_succeeded(self, direction: Direction) -> None:
        pass

    def _on_stopped(self) -> None:
        pass

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _motion_for(self, direction: Union[Direction, str]) -> MotionSpec:
        try:
            key = Direction(direction)
        except ValueError:
            raise ValueError(f"Unknown direction: {direction!r}") from None

        motion = self._profile.motions.get(key)
        if motion is None:
            raise ValueError(
                f"{self._profile.label} does not support direction {key.value!r}"
            )
        return motion

    def _schedule_release(self, generation: int) -> None:
        self._cancel_release()
        self._release_task = asyncio.create_task(self._release_after(generation))

    async def _release_after(self, generation: int) -> None:
        await asyncio.sleep(self._profile.feedback_seconds)
        self._release_task = None
        if generation == self._generation and not self._closed:
            self._reset()

    def _cancel_release(self) -> None:
        if self._release_task is not None:
            self._release_task.cancel()
            self._release_task = None

    def _reset(self) -> None:
        self._state = SessionState.IDLE
        self._direction = None

    async def aclose(self) -> None:
        """Tear the session down; late replies and timers become no-ops."""

        self._closed = True
        self._generation += 1
        task = self._release_task
        self._cancel_release()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def as_dict(self) -> dict[str, object]:
        return {
            "actuator": self._profile.name,
            "state": self._state.value,
            "direction": self._direction.value if self._direction else None,
            "speedPercent": self._speed_percent,
        }


class VehicleSession(ControlSession):
    def __init__(
        self,
        client: CommandSender,
        *,
        notifier: Optional[Notifier] = None,
        speed_percent: int = 50,
        feedback_seconds: float = VEHICLE_FEEDBACK_SECONDS,
    ) -> None:
        super().__init__(
            client,
            vehicle_profile(feedback_seconds),
            notifier=notifier,
            speed_percent=speed_percent,
        )


class TurretSession(ControlSession):
    """Turret control with a scan-mode toggle and a local angle estimate.

    The angle is purely visual feedback: each successful rotation moves it by
    ``ANGLE_STEP`` degrees and a successful stop recentres it.
    """

    ANGLE_STEP = 15
    ANGLE_LIMIT = 180

    def __init__(
        self,
        client: CommandSender,
        *,
        notifier: Optional[Notifier] = None,
        speed_percent: int = 30,
        feedback_seconds: float = TURRET_FEEDBACK_SECONDS,
    ) -> None:
        super().__init__(
            client,
            turret_profile(feedback_seconds),
            notifier=notifier,
            speed_percent=speed_percent,
        )
        self._scan_mode = False
        self._estimated_angle = 0

    @property
    def scan_mode(self) -> bool:
        return self._scan_mode

    @property
    def estimated_angle(self) -> int:
        return self._estimated_angle

    async def set_scan_mode(self, enabled: bool) -> Optional[CommandResult]:
        """Toggle scan mode.

        Entering scan mode sends nothing; no rotation loop is driven from here.
        Leaving it sends a single ``stop_turret``.
        """

        if enabled == self._scan_mode:
            return None

        self._scan_mode = enabled
        if enabled:
            self._notifier.success("Starting turret scan mode")
            return None

        self._notifier.success("Stopping turret scan")
        result = await self._client.send(Command(self._profile.stop_command))
        if not result.success:
            LOGGER.warning("Failed to stop turret: %s", result.error_message)
        return result

    def _on_motion_succeeded(self, direction: Direction) -> None:
        step = -self.ANGLE_STEP if direction is Direction.LEFT else self.ANGLE_STEP
        self._estimated_angle = max(
            -self.ANGLE_LIMIT, min(self.ANGLE_LIMIT, self._estimated_angle + step)
        )

    def _on_stopped(self) -> None:
        self._estimated_angle = 0

    def as_dict(self) -> dict[str, object]:
        payload = super().as_dict()
        payload["scanMode"] = self._scan_mode
        payload["estimatedAngle"] = self._estimated_angle
        return payload
