from pathlib import Path

from ev3_console import constants
from ev3_console.config import apply_overrides, load_config, save_config


def test_load_config_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "ev3-console.cfg"
    config = load_config(config_path)

    assert config.path == config_path
    assert config.robot.endpoint_url == constants.DEFAULT_ENDPOINT_URL
    assert config.robot.api_key is None
    assert config.robot.request_timeout_seconds == 10.0
    assert config.status.poll_interval_seconds == 5.0
    assert config.controls.vehicle_speed_percent == 50
    assert config.controls.turret_speed_percent == 30
    assert config.controls.vehicle_feedback_seconds == 1.0
    assert config.controls.turret_feedback_seconds == 0.8
    assert config.telemetry.enabled is True
    assert config.telemetry.trail_capacity == 100
    assert config.telemetry.terrain_capacity == 50
    assert config.telemetry.origin == constants.DEFAULT_ORIGIN
    assert config.server.port == constants.DEFAULT_SERVER_PORT
    assert config.logging.level == "INFO"
    assert config.logging.path is None


def test_load_config_overrides_defaults(tmp_path: Path) -> None:
    config_file = tmp_path / "ev3-console.cfg"
    config_file.write_text(
        """
[robot]
endpoint_url = https://robot.example.com/controlRobot
api_key = secret-key
request_timeout_seconds = 4

[status]
poll_interval_seconds = 2

[controls]
vehicle_speed_percent = 80
turret_feedback_seconds = 0.5

[telemetry]
enabled = false
trail_capacity = 20
origin_lat = 1.5
origin_lng = -2.5

[server]
host = 0.0.0.0
port = 9090

[logging]
level = DEBUG
path = ~/ev3.log
log_network = true
"""
    )

    config = load_config(config_file)

    assert config.robot.endpoint_url == "https://robot.example.com/controlRobot"
    assert config.robot.api_key == "secret-key"
    assert config.robot.request_timeout_seconds == 4.0
    assert config.status.poll_interval_seconds == 2.0
    assert config.controls.vehicle_speed_percent == 80
    assert config.controls.turret_feedback_seconds == 0.5
    assert config.telemetry.enabled is False
    assert config.telemetry.trail_capacity == 20
    assert config.telemetry.terrain_capacity == 50
    assert config.telemetry.origin == (1.5, -2.5)
    assert config.server.host == "0.0.0.0"
    assert config.server.port == 9090
    assert config.logging.level == "DEBUG"
    assert config.logging.path == Path("~/ev3.log").expanduser()
    assert config.logging.log_network is True


def test_load_config_clamps_out_of_range_values(tmp_path: Path) -> None:
    config_file = tmp_path / "ev3-console.cfg"
    config_file.write_text(
        """
[robot]
api_key =
request_timeout_seconds = 0

[status]
poll_interval_seconds = 0.01

[controls]
vehicle_speed_percent = 5
turret_speed_percent = 250
vehicle_feedback_seconds = -1

[telemetry]
trail_capacity = 0
terrain_capacity = -4
"""
    )

    config = load_config(config_file)

    assert config.robot.api_key is None
    assert config.robot.request_timeout_seconds == 0.1
    assert config.status.poll_interval_seconds == 0.5
    assert config.controls.vehicle_speed_percent == 10
    assert config.controls.turret_speed_percent == 100
    assert config.controls.vehicle_feedback_seconds == 0.0
    assert config.telemetry.trail_capacity == 1
    assert config.telemetry.terrain_capacity == 1


def test_apply_overrides_updates_typed_and_raw(tmp_path: Path) -> None:
    config = load_config(tmp_path / "ev3-console.cfg")

    apply_overrides(config, endpoint_url="http://localhost:5000/robot", api_key="k")

    assert config.robot.endpoint_url == "http://localhost:5000/robot"
    assert config.robot.api_key == "k"
    assert config.raw.get("robot", "endpoint_url") == "http://localhost:5000/robot"
    assert config.raw.get("robot", "api_key") == "k"


def test_apply_overrides_ignores_missing_values(tmp_path: Path) -> None:
    config = load_config(tmp_path / "ev3-console.cfg")

    apply_overrides(config)

    assert config.robot.endpoint_url == constants.DEFAULT_ENDPOINT_URL
    assert config.robot.api_key is None


def test_save_config_round_trips_overrides(tmp_path: Path) -> None:
    config_path = tmp_path / "nested" / "ev3-console.cfg"
    config = load_config(config_path)
    apply_overrides(config, api_key="persisted")

    save_config(config)

    assert config_path.exists()
    assert load_config(config_path).robot.api_key == "persisted"
