"""Command-line interface for ev3-console."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from . import constants
from .app import DashboardApp
from .client import CommandDispatchClient, CommandValidationError
from .command_names import RobotCommandNames
from .config import ConsoleConfig, apply_overrides, load_config
from .core import Command, CommandResult, DeviceStatus
from .logging import configure_logging
from .status import StatusReconciler

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ev3-console", description="Operator console for a cloud-relayed EV3 robot"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--endpoint", help="Override the robot endpoint URL")
    parser.add_argument("--api-key", help="Override the robot API key")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Run the dashboard service")

    subparsers.add_parser(
        "status", help="Query the brick once and print its normalized status"
    )

    send_parser = subparsers.add_parser("send", help="Dispatch a single command")
    send_parser.add_argument("name", help="Command name, e.g. forward or get_help")
    send_parser.add_argument(
        "-p",
        "--param",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Command parameter; values are parsed as JSON when possible",
    )

    speak_parser = subparsers.add_parser("speak", help="Make the brick speak")
    speak_parser.add_argument("text", help="Text to speak")

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    apply_overrides(config, endpoint_url=args.endpoint, api_key=args.api_key)

    if args.command == "start":
        DashboardApp.start(config)
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                if key == "api_key" and value:
                    value = value[:8] + "..."
                print(f"{key} = {value}")
            print()
        return 0

    configure_logging(config.logging.level, log_network=config.logging.log_network)

    if args.command == "status":
        return asyncio.run(_run_status(config))

    if args.command == "send":
        try:
            params = _parse_params(args.param)
        except ValueError as exc:
            LOGGER.error("%s", exc)
            return 2
        if args.name not in RobotCommandNames.ALL_COMMANDS:
            LOGGER.warning("Sending unrecognised command %r", args.name)
        return asyncio.run(_run_send(config, Command(args.name, params)))

    if args.command == "speak":
        return asyncio.run(_run_speak(config, args.text))

    LOGGER.error("Unknown command: %s", args.command)
    return 1


async def _run_status(config: ConsoleConfig) -> int:
    async with CommandDispatchClient(config.robot) as client:
        reconciler = StatusReconciler(client)
        await reconciler.poll_once()
        print(f"Connection: {client.connection_state.value}")
        if client.last_error:
            print(f"Last error: {client.last_error}")
        print(format_status(reconciler.status))
        return 0 if reconciler.status.connected else 1


async def _run_send(config: ConsoleConfig, command: Command) -> int:
    async with CommandDispatchClient(config.robot) as client:
        result = await client.send(command)
    _print_result(result)
    return 0 if result.success else 1


async def _run_speak(config: ConsoleConfig, text: str) -> int:
    async with CommandDispatchClient(config.robot) as client:
        try:
            result = await client.speak(text)
        except CommandValidationError as exc:
            LOGGER.error("%s", exc)
            return 2
    _print_result(result)
    return 0 if result.success else 1


def _print_result(result: CommandResult) -> None:
    print(json.dumps(result.as_dict(), indent=2, default=str))


def _parse_params(values: Sequence[str]) -> Optional[Dict[str, Any]]:
    if not values:
        return None

    params: Dict[str, Any] = {}
    for item in values:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise ValueError(f"Invalid parameter {item!r}; expected KEY=VALUE")
        try:
            params[key] = json.loads(raw)
        except ValueError:
            params[key] = raw
    return params


def format_status(status: DeviceStatus) -> str:
    lines = [
        f"Brick: {'connected' if status.connected else 'disconnected'}",
        f"Battery: {status.battery_percent}% ({status.battery_voltage} V)",
        f"CPU: {status.cpu_percent}%",
        f"Kernel: {status.kernel_version}",
        f"IP address: {status.ip_address}",
        f"Last update: {status.last_update.isoformat(timespec='seconds')}",
    ]

    if status.motors:
        lines.append("Motors:")
        for motor in status.motors.values():
            state = "available" if motor.available else "offline"
            stalled = " STALLED" if motor.stalled else ""
            lines.append(
                f"  {motor.name} [{motor.port}] {state} "
                f"angle={motor.angle_degrees}° "
                f"speed={motor.speed_deg_per_sec}°/s{stalled}"
            )

    if status.sensors:
        lines.append("Sensors:")
        for sensor in status.sensors.values():
            lines.append(f"  {sensor.name} [{sensor.port}] {sensor.value}")

    return "\n".join(lines)


if __name__ == "__main__":
    sys.exit(main())
