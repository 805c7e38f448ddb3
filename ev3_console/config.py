"""Configuration loader for ev3-console."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from . import constants


@dataclass(slots=True)
class RobotConfig:
    endpoint_url: str = constants.DEFAULT_ENDPOINT_URL
    api_key: Optional[str] = None
    request_timeout_seconds: float = 10.0


@dataclass(slots=True)
class StatusConfig:
    poll_interval_seconds: float = 5.0


@dataclass(slots=True)
class ControlsConfig:
    vehicle_speed_percent: int = 50
    turret_speed_percent: int = 30
    vehicle_feedback_seconds: float = 1.0
    turret_feedback_seconds: float = 0.8


@dataclass(slots=True)
class TelemetryConfig:
    enabled: bool = True
    trail_capacity: int = constants.DEFAULT_TRAIL_CAPACITY
    terrain_capacity: int = constants.DEFAULT_TERRAIN_CAPACITY
    sample_interval_seconds: float = 3.0
    origin: tuple[float, float] = field(default=constants.DEFAULT_ORIGIN)


@dataclass(slots=True)
class ServerConfig:
    host: str = constants.DEFAULT_SERVER_HOST
    port: int = constants.DEFAULT_SERVER_PORT


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class ConsoleConfig:
    robot: RobotConfig
    status: StatusConfig
    controls: ControlsConfig
    telemetry: TelemetryConfig
    server: ServerConfig
    logging: LoggingConfig
    raw: ConfigParser
    path: Path


def _clamp_percent(value: int) -> int:
    return max(constants.MIN_SPEED_PERCENT, min(constants.MAX_SPEED_PERCENT, value))


def load_config(path: Optional[Path] = None) -> ConsoleConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "robot": {
                "endpoint_url": constants.DEFAULT_ENDPOINT_URL,
                "request_timeout_seconds": "10.0",
            },
            "status": {
                "poll_interval_seconds": "5.0",
            },
            "controls": {
                "vehicle_speed_percent": "50",
                "turret_speed_percent": "30",
                "vehicle_feedback_seconds": "1.0",
                "turret_feedback_seconds": "0.8",
            },
            "telemetry": {
                "enabled": "true",
                "trail_capacity": str(constants.DEFAULT_TRAIL_CAPACITY),
                "terrain_capacity": str(constants.DEFAULT_TERRAIN_CAPACITY),
                "sample_interval_seconds": "3.0",
                "origin_lat": str(constants.DEFAULT_ORIGIN[0]),
                "origin_lng": str(constants.DEFAULT_ORIGIN[1]),
            },
            "server": {
                "host": constants.DEFAULT_SERVER_HOST,
                "port": str(constants.DEFAULT_SERVER_PORT),
            },
            "logging": {
                "level": "INFO",
                "log_network": "false",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    api_key = parser.get("robot", "api_key", fallback=None)
    robot = RobotConfig(
        endpoint_url=parser.get("robot", "endpoint_url"),
        api_key=api_key or None,
        request_timeout_seconds=max(
            0.1, parser.getfloat("robot", "request_timeout_seconds", fallback=10.0)
        ),
    )

    status = StatusConfig(
        poll_interval_seconds=max(
            0.5, parser.getfloat("status", "poll_interval_seconds", fallback=5.0)
        ),
    )

    controls_defaults = ControlsConfig()
    controls = ControlsConfig(
        vehicle_speed_percent=_clamp_percent(
            parser.getint(
                "controls",
                "vehicle_speed_percent",
                fallback=controls_defaults.vehicle_speed_percent,
            )
        ),
        turret_speed_percent=_clamp_percent(
            parser.getint(
                "controls",
                "turret_speed_percent",
                fallback=controls_defaults.turret_speed_percent,
            )
        ),
        vehicle_feedback_seconds=max(
            0.0,
            parser.getfloat(
                "controls",
                "vehicle_feedback_seconds",
                fallback=controls_defaults.vehicle_feedback_seconds,
            ),
        ),
        turret_feedback_seconds=max(
            0.0,
            parser.getfloat(
                "controls",
                "turret_feedback_seconds",
                fallback=controls_defaults.turret_feedback_seconds,
            ),
        ),
    )

    telemetry = TelemetryConfig(
        enabled=parser.getboolean("telemetry", "enabled", fallback=True),
        trail_capacity=max(
            1,
            parser.getint(
                "telemetry",
                "trail_capacity",
                fallback=constants.DEFAULT_TRAIL_CAPACITY,
            ),
        ),
        terrain_capacity=max(
            1,
            parser.getint(
                "telemetry",
                "terrain_capacity",
                fallback=constants.DEFAULT_TERRAIN_CAPACITY,
            ),
        ),
        sample_interval_seconds=max(
            0.1,
            parser.getfloat("telemetry", "sample_interval_seconds", fallback=3.0),
        ),
        origin=(
            parser.getfloat(
                "telemetry", "origin_lat", fallback=constants.DEFAULT_ORIGIN[0]
            ),
            parser.getfloat(
                "telemetry", "origin_lng", fallback=constants.DEFAULT_ORIGIN[1]
            ),
        ),
    )

    server = ServerConfig(
        host=parser.get("server", "host", fallback=constants.DEFAULT_SERVER_HOST),
        port=parser.getint("server", "port", fallback=constants.DEFAULT_SERVER_PORT),
    )

    log_path_value = parser.get("logging", "path", fallback="")
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    return ConsoleConfig(
        robot=robot,
        status=status,
        controls=controls,
        telemetry=telemetry,
        server=server,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )


def apply_overrides(
    config: ConsoleConfig,
    *,
    endpoint_url: Optional[str] = None,
    api_key: Optional[str] = None,
) -> None:
    """Apply command-line overrides to the loaded configuration."""

    if endpoint_url:
        config.robot.endpoint_url = endpoint_url
        config.raw.set("robot", "endpoint_url", endpoint_url)
    if api_key:
        config.robot.api_key = api_key
        config.raw.set("robot", "api_key", api_key)


def save_config(config: ConsoleConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
