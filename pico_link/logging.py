"""Logging setup for the pico-link process."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Per-line chatter that is only wanted when debugging the serial link.
CHATTY_LOGGERS = {
    "pico_link.wire": logging.INFO,
    "aiohttp.access": logging.WARNING,
}


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_serial: bool = False
) -> None:
    """Route pico-link logs to the console and, optionally, a log file.

    Parameters
    ----------
    level:
        Root level name from ``[logging] level``; unknown names mean INFO.
    log_path:
        File that also receives every record, e.g. ``~/.pico-link/pico-link.log``.
        Its directory is created on demand.
    log_serial:
        Keep the ``Sent:``/``Received:`` lines of ``pico_link.wire`` and the
        status server's access log. Otherwise those loggers are raised so a
        DEBUG root level does not print every telemetry line.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    logging.captureWarnings(True)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT
    )

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    for name, quiet_level in CHATTY_LOGGERS.items():
        logging.getLogger(name).setLevel(logging.NOTSET if log_serial else quiet_level)
