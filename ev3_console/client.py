"""HTTP dispatch client for the robot control endpoint."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Mapping, Optional

import aiohttp

from . import constants
from .command_names import RobotCommandNames
from .config import RobotConfig
from .core import Command, CommandResult, ConnectionState, ErrorKind

LOGGER = logging.getLogger(__name__)


class CommandValidationError(ValueError):
    """Raised before dispatch when a command fails client-side validation."""


class CommandDispatchClient:
    """Send commands to the cloud function that relays them to the brick.

    Each call to :meth:`send` is a single attempt. Transport, protocol and
    application failures come back as a failed :class:`CommandResult`; only
    client-side validation (see :meth:`speak`) raises.
    """

    def __init__(
        self,
        config: RobotConfig,
        *,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.config = config

        self._endpoint = config.endpoint_url
        self._headers = {"Content-Type": "application/json"}
        if config.api_key:
            self._headers["X-API-Key"] = config.api_key
        else:
            LOGGER.warning(
                "No API key configured; the endpoint will likely reject commands"
            )

        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = session
        self._owns_session = session is None
        self._connection_state = ConnectionState.DISCONNECTED
        self._last_error: Optional[str] = None

        LOGGER.info(
            "Robot API client targeting %s (api key %s)",
            self._endpoint,
            _mask_key(config.api_key),
        )

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    @property
    def connection_state(self) -> ConnectionState:
        return self._connection_state

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    async def send(self, command: Command) -> CommandResult:
        """Dispatch ``command`` once and classify the outcome."""

        session = await self._ensure_session()
        LOGGER.debug("Sending command %s to %s", command.kind, self._endpoint)

        try:
            async with session.post(
                self._endpoint,
                json=command.envelope(),
                headers=self._headers,
                timeout=self._timeout,
            ) as response:
                status = response.status
                body = await response.text(errors="replace")
        except asyncio.TimeoutError:
            reason = f"Request timed out after {self._timeout.total:.1f}s"
            return self._transport_failure(command, reason)
        except (aiohttp.ClientError, OSError) as exc:
            reason = str(exc) or exc.__class__.__name__
            return self._transport_failure(command, reason)

        LOGGER.debug("Command %s answered with HTTP %s", command.kind, status)

        if not 200 <= status < 300:
            self._connection_state = ConnectionState.ERROR
            reason = _extract_error_message(body)
            self._last_error = reason
            LOGGER.warning(
                "Command %s rejected with HTTP %s: %s", command.kind, status, reason
            )
            return CommandResult.failure(
                ErrorKind.PROTOCOL, reason, command=command.kind
            )

        self._connection_state = ConnectionState.CONNECTED
        self._last_error = None

        try:
            payload = json.loads(body)
        except ValueError:
            payload = body

        result = CommandResult.from_envelope(payload)
        if result.error_kind is ErrorKind.PROTOCOL:
            self._connection_state = ConnectionState.ERROR
            self._last_error = result.error_message
            LOGGER.warning(
                "Command %s returned a malformed body: %s",
                command.kind,
                result.error_message,
            )
        elif not result.success:
            self._last_error = result.error_message
            LOGGER.info(
                "Command %s was refused by the robot: %s",
                command.kind,
                result.error_message,
            )
        return result

    def _transport_failure(self, command: Command, reason: str) -> CommandResult:
        self._connection_state = ConnectionState.DISCONNECTED
        self._last_error = reason
        LOGGER.warning(
            "Command %s could not reach the endpoint: %s", command.kind, reason
        )
        return CommandResult.failure(ErrorKind.TRANSPORT, reason, command=command.kind)

    # ------------------------------------------------------------------
    # Vehicle movement
    # ------------------------------------------------------------------
    async def move_forward(
        self, speed: int = constants.DEFAULT_MOVE_SPEED, duration: float = 0
    ) -> CommandResult:
        return await self._send_motion(RobotCommandNames.FORWARD, speed, duration)

    async def move_backward(
        self, speed: int = constants.DEFAULT_MOVE_SPEED, duration: float = 0
    ) -> CommandResult:
        return await self._send_motion(RobotCommandNames.BACKWARD, speed, duration)

    async def turn_left(
        self, speed: int = constants.DEFAULT_TURN_SPEED, duration: float = 0
    ) -> CommandResult:
        return await self._send_motion(RobotCommandNames.LEFT, speed, duration)

    async def turn_right(
        self, speed: int = constants.DEFAULT_TURN_SPEED, duration: float = 0
    ) -> CommandResult:
        return await self._send_motion(RobotCommandNames.RIGHT, speed, duration)

    async def stop(self) -> CommandResult:
        return await self.send(Command(RobotCommandNames.STOP))

    # ------------------------------------------------------------------
    # Turret
    # ------------------------------------------------------------------
    async def turret_left(
        self,
        speed: int = constants.DEFAULT_TURRET_SPEED,
        duration: float = constants.DEFAULT_TURRET_DURATION,
    ) -> CommandResult:
        return await self._send_motion(RobotCommandNames.TURRET_LEFT, speed, duration)

    async def turret_right(
        self,
        speed: int = constants.DEFAULT_TURRET_SPEED,
        duration: float = constants.DEFAULT_TURRET_DURATION,
    ) -> CommandResult:
        return await self._send_motion(RobotCommandNames.TURRET_RIGHT, speed, duration)

    async def stop_turret(self) -> CommandResult:
        return await self.send(Command(RobotCommandNames.STOP_TURRET))

    # ------------------------------------------------------------------
    # Composite, telemetry and speech
    # ------------------------------------------------------------------
    async def joystick_control(
        self,
        left_forward: float,
        right_forward: float,
        left_left: float = 0,
        right_left: float = 0,
    ) -> CommandResult:
        return await self.send(
            Command(
                RobotCommandNames.JOYSTICK_CONTROL,
                {
                    "l_left": left_left,
                    "l_forward": left_forward,
                    "r_left": right_left,
                    "r_forward": right_forward,
                },
            )
        )

    async def get_status(self) -> CommandResult:
        return await self.send(Command(RobotCommandNames.GET_STATUS))

    async def get_help(self) -> CommandResult:
        return await self.send(Command(RobotCommandNames.GET_HELP))

    async def speak(self, text: str) -> CommandResult:
        """Ask the brick to speak ``text``.

        Unlike every other command this one raises: text longer than
        ``MAX_SPEECH_CHARACTERS`` is rejected with :class:`CommandValidationError`
        before any network call, and the connection state is left untouched.
        """

        if len(text) > constants.MAX_SPEECH_CHARACTERS:
            raise CommandValidationError(
                f"Text too long. Maximum {constants.MAX_SPEECH_CHARACTERS} "
                "characters allowed."
            )
        return await self.send(Command(RobotCommandNames.SPEAK, {"text": text}))

    async def _send_motion(
        self, name: str, speed: int, duration: float
    ) -> CommandResult:
        return await self.send(
            Command(name, {"speed": int(speed), "duration": duration})
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "CommandDispatchClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def _extract_error_message(body: str) -> str:
    """Pull a readable message out of an error response body."""

    fallback = body.strip() or "Request failed"
    try:
        data = json.loads(body)
    except ValueError:
        return fallback

    if isinstance(data, Mapping):
        for key in ("error", "message"):
            value = data.get(key)
            if value:
                return str(value)
    return fallback


def _mask_key(api_key: Optional[str]) -> str:
    if not api_key:
        return "NOT SET"
    return api_key[:8] + "..."
