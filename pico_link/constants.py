"""Constants used across the pico-link package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "pico-link"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_DATA_DIR = Path.home() / ".pico-link"
DEFAULT_CONFIG_PATH = DEFAULT_DATA_DIR / DEFAULT_CONFIG_FILENAME
DEFAULT_LOG_PATH = DEFAULT_DATA_DIR / "logs" / f"{APP_NAME}.log"
DEFAULT_EXPORT_DIR = DEFAULT_DATA_DIR / "exports"

DEFAULT_BAUD_RATE = 115200
DEFAULT_READ_SIZE = 256
LINE_TERMINATOR = "\n"
WIRE_ENCODING = "ascii"

HISTORY_CAPACITY = 100

# Pins exposed by the controller board's firmware.
BOARD_PINS = (0, 1, 2, 3, 4, 5, 15, 16, 17, 18, 19, 20, 21, 22)
SERVO_IDS = (0, 1, 2, 3)
SERVO_MIN_ANGLE = 0
SERVO_MAX_ANGLE = 180
