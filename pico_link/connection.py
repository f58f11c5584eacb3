"""Connection lifecycle and serialized I/O for the controller link.

This module owns the transport for one device: it opens it, runs the single
read loop that feeds inbound bytes through the line decoder into the
telemetry store, serializes outbound command writes, and tears everything
down on request or when the transport fails.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Callable, List, Optional

from . import constants
from .core.errors import (
    DeviceUnavailableError,
    NotConnectedError,
    PermissionDeniedError,
    TransportClosedError,
)
from .core.models import Command
from .core.protocols import Transport
from .encoder import encode_command
from .framing import LineDecoder
from .telemetry import TelemetryStore

LOGGER = logging.getLogger(__name__)
WIRE_LOGGER = logging.getLogger("pico_link.wire")

StateListener = Callable[["ConnectionState"], None]


class ConnectionState(str, Enum):
    """Current state of the device connection."""

    DISCONNECTED = "disconnected"
    """No transport is open."""

    CONNECTING = "connecting"
    """The transport is being opened."""

    CONNECTED = "connected"
    """The transport is open and the read loop is running."""

    CLOSING = "closing"
    """Teardown is in progress."""


class ConnectionManager:
    """Owns the transport lifecycle and serializes all device I/O.

    Key responsibilities:
    - Open the transport and start exactly one read loop per connection
    - Feed inbound chunks through a :class:`LineDecoder` into the store
    - Encode commands and write them one at a time
    - Tear down on disconnect or transport failure, always ending in
      ``DISCONNECTED``

    State listeners are called synchronously with every transition.
    """

    def __init__(
        self,
        transport: Transport,
        telemetry: TelemetryStore,
        *,
        encoder: Callable[[Command], str] = encode_command,
    ) -> None:
        self._transport = transport
        self._telemetry = telemetry
        self._encoder = encoder

        self._state = ConnectionState.DISCONNECTED
        self._decoder: Optional[LineDecoder] = None
        self._reader_task: Optional[asyncio.Task[None]] = None
        self._write_lock = asyncio.Lock()
        self._cancel_requested = False
        self._attempt = 0
        self._last_error: Optional[Exception] = None
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def last_error(self) -> Optional[Exception]:
        """Failure that ended the most recent connection, if any."""
        return self._last_error

    @property
    def telemetry(self) -> TelemetryStore:
        return self._telemetry

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener and return a callable that removes it."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    async def connect(self) -> None:
        """Open the transport and start the read loop.

        A disconnect issued while the open is pending wins: the late port is
        closed and the state stays ``DISCONNECTED``.

        Raises:
            PermissionDeniedError: If access to the device was refused.
            DeviceUnavailableError: If the device could not be opened.
        """

        if self._state is not ConnectionState.DISCONNECTED:
            LOGGER.warning("Connect requested while %s; ignoring", self._state.value)
            return

        self._attempt += 1
        attempt = self._attempt
        self._set_state(ConnectionState.CONNECTING)
        LOGGER.info("Opening device transport")

        try:
            await self._transport.open()
        except (PermissionDeniedError, DeviceUnavailableError) as exc:
            LOGGER.error("Failed to open device: %s", exc)
            if attempt == self._attempt:
                self._last_error = exc
                self._set_state(ConnectionState.DISCONNECTED)
            raise
        except Exception as exc:
            LOGGER.error("Failed to open device: %s", exc)
            error = DeviceUnavailableError(str(exc) or type(exc).__name__)
            if attempt == self._attempt:
                self._last_error = error
                self._set_state(ConnectionState.DISCONNECTED)
            raise error from exc

        if attempt != self._attempt:
            # Disconnected while the open was pending; release the late port.
            LOGGER.info("Connect abandoned by disconnect; closing device transport")
            if self._state is ConnectionState.DISCONNECTED:
                try:
                    await self._transport.close()
                except Exception:
                    LOGGER.warning("Failed to close device transport", exc_info=True)
            return

        self._last_error = None
        self._cancel_requested = False
        self._decoder = LineDecoder()
        self._set_state(ConnectionState.CONNECTED)
        self._reader_task = asyncio.create_task(
            self._read_loop(), name="pico-link-reader"
        )
        LOGGER.info("Device connection established")

    async def write(self, command: Command) -> None:
        """Encode ``command`` and write it as one terminated line.

        Writes are queued behind each other so lines never interleave.

        Raises:
            NotConnectedError: If the connection is not ``CONNECTED``.
            TransportClosedError: If the transport failed during the write.
        """

        if self._state is not ConnectionState.CONNECTED:
            raise NotConnectedError(
                f"Cannot send command while {self._state.value}"
            )

        line = self._encoder(command)
        payload = (line + constants.LINE_TERMINATOR).encode(constants.WIRE_ENCODING)

        async with self._write_lock:
            if self._state is not ConnectionState.CONNECTED:
                raise NotConnectedError(
                    f"Cannot send command while {self._state.value}"
                )
            try:
                await self._transport.write(payload)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                LOGGER.warning("Write to device failed: %s", exc)
                error = TransportClosedError(f"write failed: {exc}")
                self._last_error = error
                await self._teardown()
                raise error from exc

        WIRE_LOGGER.debug("Sent: %s", line)

    async def disconnect(self) -> None:
        """Close the connection. Safe to call in any state."""

        if self._state in (ConnectionState.DISCONNECTED, ConnectionState.CLOSING):
            return
        LOGGER.info("Disconnecting from device")
        await self._teardown()

    async def _read_loop(self) -> None:
        decoder = self._decoder
        assert decoder is not None

        try:
            while not self._cancel_requested:
                chunk = await self._transport.read()
                if self._cancel_requested:
                    break
                if not chunk:
                    raise TransportClosedError("device reported end of stream")
                for line in decoder.feed(chunk):
                    WIRE_LOGGER.debug("Received: %s", line)
                    self._telemetry.ingest(line)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self._cancel_requested:
                LOGGER.debug("Read ended during disconnect: %s", exc)
                return
            if not isinstance(exc, TransportClosedError):
                exc = TransportClosedError(str(exc) or type(exc).__name__)
            LOGGER.warning("Device transport closed unexpectedly: %s", exc)
            self._last_error = exc
            await self._teardown()

    async def _teardown(self) -> None:
        """Release the transport; every step runs even if earlier ones fail."""

        if self._state in (ConnectionState.DISCONNECTED, ConnectionState.CLOSING):
            return

        self._attempt += 1
        self._set_state(ConnectionState.CLOSING)
        self._cancel_requested = True

        try:
            self._transport.cancel_read()
        except Exception:
            LOGGER.warning("Failed to cancel pending read", exc_info=True)

        task = self._reader_task
        self._reader_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                LOGGER.warning("Read loop ended with an error", exc_info=True)

        if self._decoder is not None:
            self._decoder.reset()
            self._decoder = None

        try:
            await self._transport.close()
        except Exception:
            LOGGER.warning("Failed to close device transport", exc_info=True)

        self._set_state(ConnectionState.DISCONNECTED)
        LOGGER.info("Device connection closed")

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return

        previous = self._state
        self._state = state
        LOGGER.debug("Connection state %s -> %s", previous.value, state.value)

        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                LOGGER.warning("Connection state listener failed", exc_info=True)
