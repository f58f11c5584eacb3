"""Unit tests for ConnectionManager.

Covers the connection lifecycle, the read loop feeding telemetry, serialized
writes and best-effort teardown.
"""

import asyncio

import pytest

from pico_link.connection import ConnectionManager, ConnectionState
from pico_link.core.errors import (
    DeviceUnavailableError,
    NotConnectedError,
    PermissionDeniedError,
    TransportClosedError,
)
from pico_link.core.models import (
    GpioCommand,
    MotorCommand,
    MotorDirection,
    ServoCommand,
)
from pico_link.telemetry import TelemetryStore


@pytest.fixture
def manager_setup(transport):
    """Create a ConnectionManager recording its state transitions."""

    store = TelemetryStore()
    manager = ConnectionManager(transport, store)
    states: list[ConnectionState] = []
    manager.subscribe(states.append)
    return manager, store, states


def test_connection_state_enum_values():
    assert ConnectionState.DISCONNECTED.value == "disconnected"
    assert ConnectionState.CONNECTING.value == "connecting"
    assert ConnectionState.CONNECTED.value == "connected"
    assert ConnectionState.CLOSING.value == "closing"


def test_initial_state_is_disconnected(manager_setup):
    manager, _, states = manager_setup
    assert manager.state is ConnectionState.DISCONNECTED
    assert manager.is_connected is False
    assert states == []


@pytest.mark.asyncio
async def test_connect_transitions_to_connected(manager_setup, transport):
    manager, _, states = manager_setup

    await manager.connect()

    assert manager.is_connected
    assert transport.open_calls == 1
    assert states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]

    await manager.disconnect()


@pytest.mark.asyncio
async def test_connect_while_connected_is_ignored(manager_setup, transport):
    manager, _, _ = manager_setup
    await manager.connect()

    await manager.connect()

    assert transport.open_calls == 1
    await manager.disconnect()


@pytest.mark.asyncio
async def test_permission_denied_leaves_disconnected(manager_setup, transport):
    manager, _, states = manager_setup
    transport.open_error = PermissionDeniedError("user declined")

    with pytest.raises(PermissionDeniedError):
        await manager.connect()

    assert manager.state is ConnectionState.DISCONNECTED
    assert isinstance(manager.last_error, PermissionDeniedError)
    assert states == [ConnectionState.CONNECTING, ConnectionState.DISCONNECTED]


@pytest.mark.asyncio
async def test_unexpected_open_failure_is_device_unavailable(manager_setup, transport):
    manager, _, _ = manager_setup
    transport.open_error = OSError("device busy")

    with pytest.raises(DeviceUnavailableError, match="device busy"):
        await manager.connect()

    assert manager.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_read_loop_feeds_telemetry(manager_setup, transport, settle_tasks):
    manager, store, _ = manager_setup
    await manager.connect()

    transport.feed(b"TEMP:2")
    transport.feed(b"5.3\nDIST")
    transport.feed(b"ANCE:142\ngarbage\nBATTERY:3.7\n")
    await settle_tasks()

    assert store.snapshot() == {
        "TEMP": "25.3",
        "DISTANCE": "142",
        "BATTERY": "3.7",
    }
    assert len(store.history_snapshot()) == 3

    await manager.disconnect()


@pytest.mark.asyncio
async def test_write_encodes_and_terminates_line(manager_setup, transport):
    manager, _, _ = manager_setup
    await manager.connect()

    await manager.write(ServoCommand(servo_id=2, angle=135))
    await manager.write(MotorCommand(MotorDirection.LEFT))

    assert transport.written == [b"SERVO:2:135\n", b"MOTOR:LEFT\n"]
    await manager.disconnect()


@pytest.mark.asyncio
async def test_write_rejected_when_disconnected(manager_setup, transport):
    manager, _, _ = manager_setup

    with pytest.raises(NotConnectedError):
        await manager.write(GpioCommand(pin=5, level=True))

    assert transport.written == []
    assert transport.open_calls == 0


@pytest.mark.asyncio
async def test_concurrent_writes_do_not_interleave(manager_setup, transport):
    manager, _, _ = manager_setup
    in_flight = 0
    max_in_flight = 0

    async def slow_write(data: bytes) -> None:
        nonlocal in_flight, max_in_flight
        in_flight += 1
        max_in_flight = max(max_in_flight, in_flight)
        await asyncio.sleep(0.01)
        transport.written.append(data)
        in_flight -= 1

    transport.write = slow_write
    await manager.connect()

    await asyncio.gather(
        *(manager.write(GpioCommand(pin=pin, level=True)) for pin in range(5))
    )

    assert max_in_flight == 1
    assert transport.written == [f"GPIO:{pin}:1\n".encode() for pin in range(5)]
    await manager.disconnect()


@pytest.mark.asyncio
async def test_disconnect_releases_everything(manager_setup, transport):
    manager, _, states = manager_setup
    await manager.connect()
    reader = manager._reader_task

    await manager.disconnect()

    assert manager.state is ConnectionState.DISCONNECTED
    assert transport.cancel_calls == 1
    assert transport.close_calls == 1
    assert reader is not None and reader.done()
    assert manager._reader_task is None
    assert states[-2:] == [ConnectionState.CLOSING, ConnectionState.DISCONNECTED]
    assert manager.last_error is None


@pytest.mark.asyncio
async def test_disconnect_is_idempotent(manager_setup, transport):
    manager, _, _ = manager_setup

    await manager.disconnect()
    await manager.connect()
    await manager.disconnect()
    await manager.disconnect()

    assert manager.state is ConnectionState.DISCONNECTED
    assert transport.close_calls == 1


@pytest.mark.asyncio
async def test_disconnect_cancels_stalled_read(manager_setup, transport):
    manager, _, _ = manager_setup
    transport.honour_cancel = False
    await manager.connect()

    await asyncio.wait_for(manager.disconnect(), timeout=1)

    assert manager.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_teardown_continues_after_close_failure(manager_setup, transport):
    manager, _, _ = manager_setup

    async def broken_close() -> None:
        raise OSError("close failed")

    transport.close = broken_close
    await manager.connect()

    await manager.disconnect()

    assert manager.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_end_of_stream_is_implicit_disconnect(
    manager_setup, transport, settle_tasks
):
    manager, store, states = manager_setup
    await manager.connect()

    transport.feed(b"TEMP:20\n")
    transport.end_stream()
    await settle_tasks()

    assert manager.state is ConnectionState.DISCONNECTED
    assert isinstance(manager.last_error, TransportClosedError)
    assert transport.close_calls == 1
    assert store.snapshot() == {"TEMP": "20"}
    assert states[-2:] == [ConnectionState.CLOSING, ConnectionState.DISCONNECTED]


@pytest.mark.asyncio
async def test_read_fault_is_implicit_disconnect(manager_setup, transport, settle_tasks):
    manager, _, _ = manager_setup
    await manager.connect()

    transport.fail(OSError("device unplugged"))
    await settle_tasks()

    assert manager.state is ConnectionState.DISCONNECTED
    assert isinstance(manager.last_error, TransportClosedError)
    assert "device unplugged" in str(manager.last_error)

    with pytest.raises(NotConnectedError):
        await manager.write(MotorCommand(MotorDirection.STOP))


@pytest.mark.asyncio
async def test_write_failure_tears_down(manager_setup, transport):
    manager, _, _ = manager_setup
    await manager.connect()
    transport.write_error = OSError("write timeout")

    with pytest.raises(TransportClosedError):
        await manager.write(MotorCommand(MotorDirection.STOP))

    assert manager.state is ConnectionState.DISCONNECTED
    assert transport.close_calls == 1


@pytest.mark.asyncio
async def test_reconnect_after_disconnect(manager_setup, transport, settle_tasks):
    manager, store, _ = manager_setup
    await manager.connect()
    transport.feed(b"A:")
    await manager.disconnect()

    await manager.connect()
    transport.feed(b"B:2\n")
    await settle_tasks()

    assert manager.is_connected
    assert store.snapshot() == {"B": "2"}
    assert transport.open_calls == 2
    await manager.disconnect()


@pytest.mark.asyncio
async def test_listener_failure_does_not_break_transitions(manager_setup):
    manager, _, states = manager_setup

    def broken(state):
        raise RuntimeError("listener bug")

    manager.subscribe(broken)
    await manager.connect()

    assert manager.is_connected
    assert states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
    await manager.disconnect()


@pytest.mark.asyncio
async def test_unsubscribe_stops_notifications(transport):
    manager = ConnectionManager(transport, TelemetryStore())
    states: list[ConnectionState] = []
    unsubscribe = manager.subscribe(states.append)

    unsubscribe()
    await manager.connect()

    assert states == []
    await manager.disconnect()


@pytest.mark.asyncio
async def test_disconnect_while_connecting_wins(gated_transport, settle_tasks):
    transport = gated_transport
    manager = ConnectionManager(transport, TelemetryStore())
    states: list[ConnectionState] = []
    manager.subscribe(states.append)

    connecting = asyncio.create_task(manager.connect())
    await settle_tasks()
    assert manager.state is ConnectionState.CONNECTING

    await manager.disconnect()
    assert manager.state is ConnectionState.DISCONNECTED

    transport.release.set()
    await connecting

    assert manager.state is ConnectionState.DISCONNECTED
    assert states == [
        ConnectionState.CONNECTING,
        ConnectionState.CLOSING,
        ConnectionState.DISCONNECTED,
    ]
    assert transport.close_calls == 2
    with pytest.raises(NotConnectedError):
        await manager.write(GpioCommand(pin=1, level=True))


@pytest.mark.asyncio
async def test_reconnect_after_abandoned_connect(gated_transport, settle_tasks):
    transport = gated_transport
    manager = ConnectionManager(transport, TelemetryStore())

    connecting = asyncio.create_task(manager.connect())
    await settle_tasks()
    await manager.disconnect()
    transport.release.set()
    await connecting

    await manager.connect()

    assert manager.is_connected
    assert transport.open_calls == 2
    await manager.disconnect()
