import asyncio
from typing import Optional

import pytest


class FakeTransport:
    """In-memory transport fed by the test."""

    def __init__(self) -> None:
        self.open_calls = 0
        self.close_calls = 0
        self.cancel_calls = 0
        self.written: list[bytes] = []
        self.open_error: Optional[BaseException] = None
        self.write_error: Optional[BaseException] = None
        self.honour_cancel = True
        self._chunks: asyncio.Queue = asyncio.Queue()

    async def open(self) -> None:
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self._chunks = asyncio.Queue()

    async def read(self) -> bytes:
        item = await self._chunks.get()
        if isinstance(item, BaseException):
            raise item
        return item

    def cancel_read(self) -> None:
        self.cancel_calls += 1
        if self.honour_cancel:
            self._chunks.put_nowait(b"")

    async def write(self, data: bytes) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.written.append(data)

    async def close(self) -> None:
        self.close_calls += 1

    def feed(self, chunk: bytes) -> None:
        self._chunks.put_nowait(chunk)

    def end_stream(self) -> None:
        self._chunks.put_nowait(b"")

    def fail(self, exc: BaseException) -> None:
        self._chunks.put_nowait(exc)

    @property
    def lines(self) -> list[str]:
        return [data.decode("ascii").rstrip("\n") for data in self.written]


class RecordingSpeaker:
    def __init__(self) -> None:
        self.spoken: list[str] = []

    def speak(self, text: str) -> None:
        self.spoken.append(text)


async def settle(rounds: int = 10) -> None:
    """Let background tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def speaker() -> RecordingSpeaker:
    return RecordingSpeaker()


@pytest.fixture
def settle_tasks():
    return settle


class GatedTransport(FakeTransport):
    """Transport whose open() blocks until ``release`` is set.

    Like a real serial port, cancelling a read does nothing while the port
    is not open.
    """

    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()
        self.honour_cancel = False

    async def open(self) -> None:
        await self.release.wait()
        await super().open()


@pytest.fixture
def gated_transport() -> GatedTransport:
    return GatedTransport()
