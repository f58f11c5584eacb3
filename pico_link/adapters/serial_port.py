"""pyserial-backed transport for the controller's USB serial port."""

from __future__ import annotations

import asyncio
import errno
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import serial
from serial.tools import list_ports

from .. import constants
from ..core.errors import (
    DeviceUnavailableError,
    PermissionDeniedError,
    TransportClosedError,
)

LOGGER = logging.getLogger(__name__)

_PERMISSION_ERRNOS = {errno.EACCES, errno.EPERM}


@dataclass(slots=True)
class PortInfo:
    device: str
    description: str
    hwid: str


def list_serial_ports() -> List[PortInfo]:
    """Enumerate serial devices that could host the controller."""

    ports = [
        PortInfo(device=info.device, description=info.description, hwid=info.hwid)
        for info in list_ports.comports()
    ]
    return sorted(ports, key=lambda port: port.device)


class SerialTransport:
    """Duplex byte stream over a serial port.

    Blocking pyserial calls run in worker threads so the event loop stays
    free. The port is opened without a read timeout; a pending read only
    returns once bytes arrive or :meth:`cancel_read` is called.
    """

    def __init__(
        self,
        port: Optional[str],
        baud_rate: int = constants.DEFAULT_BAUD_RATE,
        *,
        read_size: int = constants.DEFAULT_READ_SIZE,
        serial_factory: Callable[..., Any] = serial.Serial,
    ) -> None:
        self.port = port
        self.baud_rate = baud_rate
        self.read_size = max(1, read_size)
        self._serial_factory = serial_factory
        self._serial: Optional[Any] = None

    @property
    def is_open(self) -> bool:
        return self._serial is not None and bool(self._serial.is_open)

    async def open(self) -> None:
        if not self.port:
            raise DeviceUnavailableError("no serial device selected")
        if self.is_open:
            return

        LOGGER.info("Opening %s at %d baud", self.port, self.baud_rate)
        try:
            self._serial = await asyncio.to_thread(
                self._serial_factory,
                port=self.port,
                baudrate=self.baud_rate,
                timeout=None,
            )
        except PermissionError as exc:
            raise PermissionDeniedError(f"access to {self.port} denied") from exc
        except serial.SerialException as exc:
            if exc.errno in _PERMISSION_ERRNOS:
                raise PermissionDeniedError(f"access to {self.port} denied") from exc
            raise DeviceUnavailableError(f"could not open {self.port}: {exc}") from exc
        except (OSError, ValueError) as exc:
            raise DeviceUnavailableError(f"could not open {self.port}: {exc}") from exc

    async def read(self) -> bytes:
        handle = self._require_open()
        try:
            return await asyncio.to_thread(self._read_blocking, handle)
        except serial.SerialException as exc:
            raise TransportClosedError(str(exc)) from exc

    def _read_blocking(self, handle: Any) -> bytes:
        waiting = handle.in_waiting
        return handle.read(min(max(1, waiting), self.read_size))

    def cancel_read(self) -> None:
        if self.is_open:
            self._serial.cancel_read()

    async def write(self, data: bytes) -> None:
        handle = self._require_open()
        try:
            await asyncio.to_thread(self._write_blocking, handle, data)
        except serial.SerialException as exc:
            raise TransportClosedError(str(exc)) from exc

    @staticmethod
    def _write_blocking(handle: Any, data: bytes) -> None:
        handle.write(data)
        handle.flush()

    async def close(self) -> None:
        handle = self._serial
        self._serial = None
        if handle is None:
            return
        await asyncio.to_thread(handle.close)
        LOGGER.info("Closed %s", self.port)

    def _require_open(self) -> Any:
        if self._serial is None:
            raise TransportClosedError("serial port is not open")
        return self._serial
