import aiohttp
import pytest

from pico_link.health import HealthReporter, HealthServer


@pytest.mark.asyncio
async def test_health_reporter_snapshot():
    reporter = HealthReporter()

    await reporter.update("serial", True, "connected")
    await reporter.update("voice", False, "not-allowed")

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "degraded"
    component_list = snapshot.get("components", [])
    assert isinstance(component_list, list)
    components = {item["name"]: item for item in component_list}
    assert components["serial"]["healthy"] is True
    assert components["voice"]["healthy"] is False
    assert components["voice"]["detail"] == "not-allowed"


@pytest.mark.asyncio
async def test_health_server_serves_snapshot_and_telemetry(unused_tcp_port):
    reporter = HealthReporter()
    await reporter.update("serial", True)

    host = "127.0.0.1"
    port = unused_tcp_port
    server = HealthServer(
        reporter,
        host,
        port,
        telemetry=lambda: {"latest": {"TEMP": "25.3"}, "history": []},
    )
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://{host}:{port}/healthz") as response:
                payload = await response.json()
                assert response.status == 200
                assert payload["status"] == "ok"
            async with session.get(f"http://{host}:{port}/telemetry") as response:
                payload = await response.json()
                assert response.status == 200
                assert payload["latest"] == {"TEMP": "25.3"}
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_health_server_reports_degraded(unused_tcp_port):
    reporter = HealthReporter()
    await reporter.update("serial", False, "disconnected")

    server = HealthServer(reporter, "127.0.0.1", unused_tcp_port)
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(
                f"http://127.0.0.1:{unused_tcp_port}/healthz"
            ) as response:
                assert response.status == 503
            async with session.get(
                f"http://127.0.0.1:{unused_tcp_port}/telemetry"
            ) as response:
                assert response.status == 404
    finally:
        await server.stop()
