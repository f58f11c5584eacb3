"""Error taxonomy for the device link."""

from __future__ import annotations


class LinkError(RuntimeError):
    """Base class for failures surfaced by the device link."""


class PermissionDeniedError(LinkError):
    """Raised when the user or OS refuses access to a device."""


class DeviceUnavailableError(LinkError):
    """Raised when no device is selected or the device cannot be opened."""


class TransportClosedError(LinkError):
    """Raised when the transport ends or faults while connected."""


class NotConnectedError(LinkError):
    """Raised when a write is attempted without an open connection."""
