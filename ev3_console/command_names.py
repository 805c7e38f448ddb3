"""Centralized command name constants for the robot control endpoint.

These names travel in the ``command`` field of the JSON request envelope:
    {"command": "<name>", "params": {...}}

The cloud function forwards them verbatim to the brick, so they must match the
names its dispatcher understands.
"""

from __future__ import annotations


class RobotCommandNames:
    """Command name constants understood by the robot control endpoint."""

    # -------------------------------------------------------------------------
    # Movement Commands (params: speed, duration)
    # -------------------------------------------------------------------------

    FORWARD = "forward"
    """Drive forward. A duration of 0 keeps driving until stopped."""

    BACKWARD = "backward"
    """Drive backward."""

    LEFT = "left"
    """Turn left in place."""

    RIGHT = "right"
    """Turn right in place."""

    STOP = "stop"
    """Stop both drive motors. Takes no params."""

    # -------------------------------------------------------------------------
    # Turret Commands (params: speed, duration)
    # -------------------------------------------------------------------------

    TURRET_LEFT = "turret_left"
    """Rotate the turret counter-clockwise."""

    TURRET_RIGHT = "turret_right"
    """Rotate the turret clockwise."""

    STOP_TURRET = "stop_turret"
    """Stop the turret motor. Takes no params."""

    # -------------------------------------------------------------------------
    # Composite Commands
    # -------------------------------------------------------------------------

    JOYSTICK_CONTROL = "joystick_control"
    """Two-stick drive (params: l_left, l_forward, r_left, r_forward)."""

    # -------------------------------------------------------------------------
    # Telemetry Commands (no params)
    # -------------------------------------------------------------------------

    GET_STATUS = "get_status"
    """Report battery, CPU, motors and sensors under ``result.device_info``."""

    GET_HELP = "get_help"
    """List the commands the brick understands."""

    # -------------------------------------------------------------------------
    # Speech Commands
    # -------------------------------------------------------------------------

    SPEAK = "speak"
    """Text-to-speech on the brick (params: text)."""

    # -------------------------------------------------------------------------
    # Command Sets
    # -------------------------------------------------------------------------

    ALL_COMMANDS = frozenset(
        {
            FORWARD,
            BACKWARD,
            LEFT,
            RIGHT,
            STOP,
            TURRET_LEFT,
            TURRET_RIGHT,
            STOP_TURRET,
            JOYSTICK_CONTROL,
            GET_STATUS,
            GET_HELP,
            SPEAK,
        }
    )
    """Every command name known to this client."""
