"""Telemetry ingestion and bounded history for ``KEY:VALUE`` lines."""

from __future__ import annotations

import csv
import logging
from collections import deque
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Deque, Dict, Mapping, Optional, TextIO, Tuple

from . import constants
from .core.models import TelemetrySample

LOGGER = logging.getLogger(__name__)

CSV_HEADER = ("Timestamp", "Key", "Value")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TelemetryStore:
    """Latest value per key plus a capacity-bounded chronological history.

    The connection read loop is the only writer. Readers receive immutable
    snapshots and never see the live containers.
    """

    def __init__(
        self,
        capacity: int = constants.HISTORY_CAPACITY,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self._latest: Dict[str, str] = {}
        self._history: Deque[TelemetrySample] = deque(maxlen=capacity)
        self._clock = clock

    @property
    def capacity(self) -> int:
        return self._history.maxlen or 0

    def ingest(self, line: str) -> Optional[TelemetrySample]:
        """Record one telemetry line.

        Lines without a ``:`` separator are dropped and ``None`` is returned.
        Only the first colon splits; the rest belong to the value.
        """

        if ":" not in line:
            LOGGER.debug("Dropping malformed telemetry line: %r", line)
            return None

        key, value = line.split(":", 1)
        sample = TelemetrySample(
            key=key.strip(), value=value.strip(), observed_at=self._clock()
        )
        self._latest[sample.key] = sample.value
        self._history.append(sample)
        return sample

    def snapshot(self) -> Mapping[str, str]:
        """Return a read-only copy of the latest value per key."""
        return MappingProxyType(dict(self._latest))

    def history_snapshot(self) -> Tuple[TelemetrySample, ...]:
        """Return retained samples, oldest first."""
        return tuple(self._history)

    def clear_history(self) -> None:
        """Forget the history while keeping the latest values."""
        self._history.clear()

    def export_csv(self, stream: TextIO) -> int:
        """Write the history as CSV and return the number of data rows."""

        samples = self.history_snapshot()
        writer = csv.writer(stream, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for sample in samples:
            writer.writerow(
                (
                    sample.observed_at.isoformat(timespec="milliseconds"),
                    sample.key,
                    sample.value,
                )
            )
        return len(samples)
