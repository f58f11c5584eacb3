"""Domain models for device commands and telemetry."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Union

from .. import constants


class MotorDirection(str, Enum):
    """Drive directions understood by the motor firmware."""

    FORWARD = "FORWARD"
    BACKWARD = "BACKWARD"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    STOP = "STOP"


@dataclass(frozen=True, slots=True)
class GpioCommand:
    """Drive a GPIO pin high or low.

    Pins are passed through verbatim; the firmware validates them.
    """

    pin: int
    level: bool


@dataclass(frozen=True, slots=True)
class ServoCommand:
    servo_id: int
    angle: int

    def __post_init__(self) -> None:
        if not constants.SERVO_MIN_ANGLE <= self.angle <= constants.SERVO_MAX_ANGLE:
            raise ValueError(
                f"Servo angle must be within "
                f"[{constants.SERVO_MIN_ANGLE}, {constants.SERVO_MAX_ANGLE}], "
                f"got {self.angle}"
            )


@dataclass(frozen=True, slots=True)
class MotorCommand:
    direction: MotorDirection


@dataclass(frozen=True, slots=True)
class ScanCommand:
    """Start the controller's scanning routine."""


Command = Union[GpioCommand, ServoCommand, MotorCommand, ScanCommand]


@dataclass(frozen=True, slots=True)
class TelemetrySample:
    key: str
    value: str
    observed_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def as_dict(self) -> dict[str, str]:
        return {
            "timestamp": self.observed_at.isoformat(timespec="milliseconds"),
            "key": self.key,
            "value": self.value,
        }
