"""Newline framing for the inbound serial byte stream."""

from __future__ import annotations

import codecs
from typing import List

from . import constants


class LineDecoder:
    """Turn arbitrary byte chunks into trimmed, newline-delimited lines.

    The decoder keeps the trailing partial line (and any partial multi-byte
    character) between calls, so the lines produced depend only on the bytes
    fed and never on how they were split into chunks.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._encoding = encoding
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._carry = ""

    @property
    def pending(self) -> str:
        """Text received after the last line terminator."""
        return self._carry

    def feed(self, chunk: bytes) -> List[str]:
        text = self._carry + self._decoder.decode(chunk)
        *complete, self._carry = text.split(constants.LINE_TERMINATOR)

        lines: List[str] = []
        for segment in complete:
            line = segment.strip()
            if line:
                lines.append(line)
        return lines

    def reset(self) -> None:
        """Drop any buffered partial line."""
        self._decoder.reset()
        self._carry = ""
