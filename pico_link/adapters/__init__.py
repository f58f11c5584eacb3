"""Device transport adapters."""

from .serial_port import PortInfo, SerialTransport, list_serial_ports

__all__ = ["PortInfo", "SerialTransport", "list_serial_ports"]
