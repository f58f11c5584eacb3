"""Bulk GPIO actions and servo position presets."""

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Sequence

from . import constants
from .core.models import GpioCommand, ServoCommand

SERVO_PRESETS: Mapping[str, Sequence[int]] = {
    "home": (90, 90, 90, 90),
    "scan": (45, 135, 90, 90),
    "rest": (0, 0, 0, 0),
}


def all_gpio(level: bool, pins: Iterable[int] = constants.BOARD_PINS) -> List[GpioCommand]:
    """One command per pin driving every pin to ``level``."""
    return [GpioCommand(pin=pin, level=level) for pin in pins]


def servo_preset(name: str) -> List[ServoCommand]:
    """Commands moving each servo to the named preset.

    Raises:
        ValueError: If ``name`` is not a known preset.
    """

    try:
        angles = SERVO_PRESETS[name.strip().lower()]
    except KeyError:
        known = ", ".join(sorted(SERVO_PRESETS))
        raise ValueError(f"Unknown servo preset {name!r} (expected one of {known})") from None
    return [
        ServoCommand(servo_id=servo_id, angle=angle)
        for servo_id, angle in zip(constants.SERVO_IDS, angles)
    ]


class GpioBank:
    """Tracks the last level commanded for each board pin."""

    def __init__(self, pins: Iterable[int] = constants.BOARD_PINS) -> None:
        self._levels: Dict[int, bool] = {pin: False for pin in pins}

    @property
    def levels(self) -> Dict[int, bool]:
        return dict(self._levels)

    def toggle(self, pin: int) -> GpioCommand:
        return self.set(pin, not self._levels.get(pin, False))

    def set(self, pin: int, level: bool) -> GpioCommand:
        self._levels[pin] = level
        return GpioCommand(pin=pin, level=level)

    def set_all(self, level: bool) -> List[GpioCommand]:
        commands = all_gpio(level, list(self._levels))
        for command in commands:
            self._levels[command.pin] = level
        return commands
