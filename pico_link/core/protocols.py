"""Protocol definitions for transports and feedback channels."""

from __future__ import annotations

from typing import Awaitable, Callable, Protocol

from .models import Command


CommandSink = Callable[[Command], Awaitable[None]]


class Transport(Protocol):
    """Byte-oriented duplex stream to the controller board."""

    async def open(self) -> None:
        """Open the underlying device.

        Raises:
            PermissionDeniedError: If access to the device is refused.
            DeviceUnavailableError: If no device is selected or open fails.
        """
        ...

    async def read(self) -> bytes:
        """Wait for the next chunk of bytes.

        Returns an empty bytes object when the read was cancelled or the
        stream ended.
        """
        ...

    def cancel_read(self) -> None:
        """Unblock a pending ``read`` call."""
        ...

    async def write(self, data: bytes) -> None:
        """Write ``data`` to the device in full."""
        ...

    async def close(self) -> None:
        """Release the device. Closing twice is a no-op."""
        ...


class Speaker(Protocol):
    """Spoken feedback channel for voice control."""

    def speak(self, text: str) -> None:
        ...
