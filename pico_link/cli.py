"""Command-line interface for pico-link."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import constants
from .adapters import list_serial_ports
from .config import LinkConfig, load_config
from .core.errors import LinkError
from .core.models import Command
from .encoder import encode_command, parse_wire
from .session import DeviceSession
from .voice import SilentSpeaker, VoiceCommandInterpreter

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pico-link", description="Serial command and telemetry link for Pico controllers"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "-p", "--port", help="Serial device to use, overriding the configuration"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "start", help="Connect and read voice utterances from stdin, one per line"
    )
    subparsers.add_parser("ports", help="List available serial ports")

    send_parser = subparsers.add_parser(
        "send", help="Connect, send commands in wire form and disconnect"
    )
    send_parser.add_argument("wire", nargs="+", help="Commands such as MOTOR:LEFT")

    interpret_parser = subparsers.add_parser(
        "interpret", help="Show the command a voice utterance maps to"
    )
    interpret_parser.add_argument("text", nargs="+", help="Utterance text")

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    return parser


async def _send_commands(config: LinkConfig, commands: List[Command]) -> int:
    session = DeviceSession(config)
    await session.init()
    try:
        await session.connect()
        await session.send_all(commands)
    except LinkError as exc:
        LOGGER.error("Send failed: %s", exc)
        return 1
    finally:
        await session.shutdown()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    if args.port:
        config.serial.port = args.port
        config.raw.set("serial", "port", args.port)

    if args.command == "start":
        return DeviceSession.start(config, sys.stdin)

    if args.command == "ports":
        ports = list_serial_ports()
        if not ports:
            print("No serial ports found")
        for port in ports:
            print(f"{port.device}\t{port.description}\t{port.hwid}")
        return 0

    if args.command == "send":
        try:
            commands = [parse_wire(item) for item in args.wire]
        except ValueError as exc:
            LOGGER.error("%s", exc)
            return 2
        return asyncio.run(_send_commands(config, commands))

    if args.command == "interpret":
        interpreter = VoiceCommandInterpreter(speaker=SilentSpeaker())
        command = interpreter.interpret(" ".join(args.text))
        if command is None:
            print("Command not recognized")
            return 1
        print(encode_command(command))
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
