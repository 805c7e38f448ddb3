"""Constants used across the ev3-console package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "ev3-console"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DEFAULT_ENDPOINT_URL = (
    "https://europe-central2-wrack-control.cloudfunctions.net/controlRobot"
)

DEFAULT_SERVER_HOST = "127.0.0.1"
DEFAULT_SERVER_PORT = 8080

# Speed units understood by the brick firmware (degrees per second).
MAX_SPEED = 2000
DEFAULT_MOVE_SPEED = 500
DEFAULT_TURN_SPEED = 300
DEFAULT_TURRET_SPEED = 200
DEFAULT_TURRET_DURATION = 1.0

MAX_SPEECH_CHARACTERS = 500

MIN_SPEED_PERCENT = 10
MAX_SPEED_PERCENT = 100

DEFAULT_TRAIL_CAPACITY = 100
DEFAULT_TERRAIN_CAPACITY = 50

# Berlin, where the demo map is centred.
DEFAULT_ORIGIN = (52.520008, 13.404954)
