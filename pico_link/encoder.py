"""Wire encoding for outbound controller commands.

Every command maps to exactly one ASCII line. Line termination is added by
the connection layer, not here.

| Command      | Wire form                 |
|--------------|---------------------------|
| GpioCommand  | ``GPIO:<pin>:<1|0>``      |
| ServoCommand | ``SERVO:<id>:<angle>``    |
| MotorCommand | ``MOTOR:<direction>``     |
| ScanCommand  | ``SCAN:START``            |
"""

from __future__ import annotations

from .core.models import (
    Command,
    GpioCommand,
    MotorCommand,
    MotorDirection,
    ScanCommand,
    ServoCommand,
)

SCAN_WIRE = "SCAN:START"


def encode_command(command: Command) -> str:
    """Return the canonical wire line for ``command``."""

    if isinstance(command, GpioCommand):
        return f"GPIO:{command.pin}:{1 if command.level else 0}"
    if isinstance(command, ServoCommand):
        return f"SERVO:{command.servo_id}:{command.angle}"
    if isinstance(command, MotorCommand):
        return f"MOTOR:{command.direction.value}"
    if isinstance(command, ScanCommand):
        return SCAN_WIRE
    raise TypeError(f"Unsupported command type: {type(command).__name__}")


def parse_wire(text: str) -> Command:
    """Parse a wire line back into a command.

    Raises:
        ValueError: If ``text`` is not part of the outbound vocabulary.
    """

    line = text.strip()
    head, _, rest = line.partition(":")
    head = head.upper()

    if head == "GPIO":
        pin, _, level = rest.partition(":")
        if level not in {"0", "1"}:
            raise ValueError(f"Invalid GPIO level in {line!r}")
        return GpioCommand(pin=_parse_int(pin, line), level=level == "1")

    if head == "SERVO":
        servo_id, _, angle = rest.partition(":")
        return ServoCommand(
            servo_id=_parse_int(servo_id, line), angle=_parse_int(angle, line)
        )

    if head == "MOTOR":
        try:
            return MotorCommand(MotorDirection(rest.upper()))
        except ValueError:
            raise ValueError(f"Unknown motor direction in {line!r}") from None

    if line.upper() == SCAN_WIRE:
        return ScanCommand()

    raise ValueError(f"Unrecognised command: {line!r}")


def _parse_int(value: str, line: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Expected an integer in {line!r}") from None


class CommandEncoder:
    """Namespace for the encoding helpers."""

    encode = staticmethod(encode_command)
    decode = staticmethod(parse_wire)
