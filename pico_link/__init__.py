"""Serial command and telemetry link for Pico robot controllers."""

__version__ = "0.1.0"
