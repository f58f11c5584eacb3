"""Configuration loader for pico-link."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants


@dataclass(slots=True)
class SerialConfig:
    port: Optional[str] = None  # None until a device is selected
    baud_rate: int = constants.DEFAULT_BAUD_RATE
    read_size: int = constants.DEFAULT_READ_SIZE


@dataclass(slots=True)
class TelemetryConfig:
    history_capacity: int = constants.HISTORY_CAPACITY
    export_dir: Path = constants.DEFAULT_EXPORT_DIR


@dataclass(slots=True)
class VoiceConfig:
    continuous: bool = True
    acknowledge: bool = True


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = constants.DEFAULT_LOG_PATH
    log_serial: bool = False


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class LinkConfig:
    serial: SerialConfig
    telemetry: TelemetryConfig
    voice: VoiceConfig
    logging: LoggingConfig
    health: HealthConfig
    raw: ConfigParser
    path: Path


def load_config(path: Optional[Path] = None) -> LinkConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "serial": {
                "port": "",
                "baud_rate": str(constants.DEFAULT_BAUD_RATE),
                "read_size": str(constants.DEFAULT_READ_SIZE),
            },
            "telemetry": {
                "history_capacity": str(constants.HISTORY_CAPACITY),
                "export_dir": str(constants.DEFAULT_EXPORT_DIR),
            },
            "voice": {
                "continuous": "true",
                "acknowledge": "true",
            },
            "logging": {
                "level": "INFO",
                "path": str(constants.DEFAULT_LOG_PATH),
                "log_serial": "false",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    port_value = parser.get("serial", "port", fallback="").strip()

    try:
        baud_rate = parser.getint(
            "serial", "baud_rate", fallback=constants.DEFAULT_BAUD_RATE
        )
    except ValueError:
        baud_rate = constants.DEFAULT_BAUD_RATE

    serial = SerialConfig(
        port=port_value or None,
        baud_rate=baud_rate,
        read_size=max(
            1,
            parser.getint("serial", "read_size", fallback=constants.DEFAULT_READ_SIZE),
        ),
    )

    telemetry = TelemetryConfig(
        history_capacity=max(
            1,
            parser.getint(
                "telemetry", "history_capacity", fallback=constants.HISTORY_CAPACITY
            ),
        ),
        export_dir=Path(
            parser.get(
                "telemetry", "export_dir", fallback=str(constants.DEFAULT_EXPORT_DIR)
            )
        ).expanduser(),
    )

    voice = VoiceConfig(
        continuous=parser.getboolean("voice", "continuous", fallback=True),
        acknowledge=parser.getboolean("voice", "acknowledge", fallback=True),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_serial=parser.getboolean("logging", "log_serial", fallback=False),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=parser.getint("health", "port", fallback=0),
    )

    return LinkConfig(
        serial=serial,
        telemetry=telemetry,
        voice=voice,
        logging=logging_config,
        health=health,
        raw=parser,
        path=config_path,
    )


def save_config(config: LinkConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
