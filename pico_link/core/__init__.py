"""Core primitives for pico-link."""

from .errors import (
    DeviceUnavailableError,
    LinkError,
    NotConnectedError,
    PermissionDeniedError,
    TransportClosedError,
)
from .models import (
    Command,
    GpioCommand,
    MotorCommand,
    MotorDirection,
    ScanCommand,
    ServoCommand,
    TelemetrySample,
)
from .protocols import CommandSink, Speaker, Transport

__all__ = [
    "Command",
    "CommandSink",
    "DeviceUnavailableError",
    "GpioCommand",
    "LinkError",
    "MotorCommand",
    "MotorDirection",
    "NotConnectedError",
    "PermissionDeniedError",
    "ScanCommand",
    "ServoCommand",
    "Speaker",
    "TelemetrySample",
    "Transport",
    "TransportClosedError",
]
