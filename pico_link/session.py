"""Process-wide device session wiring the link components together."""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
    TextIO,
    Tuple,
)

from .adapters import SerialTransport
from .config import LinkConfig, load_config
from .connection import ConnectionManager, ConnectionState
from .controls import GpioBank, servo_preset
from .core.errors import DeviceUnavailableError, PermissionDeniedError
from .core.models import Command, TelemetrySample
from .core.protocols import Speaker, Transport
from .health import HealthReporter, HealthServer
from .logging import configure_logging
from .telemetry import TelemetryStore
from .voice import (
    FinalResult,
    LoggingSpeaker,
    SilentSpeaker,
    VoiceCommandInterpreter,
    VoiceSession,
    VoiceState,
)

LOGGER = logging.getLogger(__name__)


class DeviceSession:
    """Owns the connection, telemetry store and voice control for one device.

    The session has an explicit lifecycle: ``await init()`` before use and
    ``await shutdown()`` when done. Components that need device access get
    the session passed in rather than reaching for globals.
    """

    def __init__(
        self,
        config: Optional[LinkConfig] = None,
        *,
        transport: Optional[Transport] = None,
        speaker: Optional[Speaker] = None,
    ) -> None:
        self._config = config or load_config()
        serial_config = self._config.serial

        self.telemetry = TelemetryStore(self._config.telemetry.history_capacity)
        self._transport: Transport = transport or SerialTransport(
            serial_config.port,
            serial_config.baud_rate,
            read_size=serial_config.read_size,
        )
        self.connection = ConnectionManager(self._transport, self.telemetry)

        if speaker is None:
            speaker = LoggingSpeaker() if self._config.voice.acknowledge else SilentSpeaker()
        self.interpreter = VoiceCommandInterpreter(speaker=speaker)
        self.gpio = GpioBank()

        self._voice: Optional[VoiceSession] = None
        self._voice_task: Optional[asyncio.Task[None]] = None
        self._health = HealthReporter()
        self._health_server: Optional[HealthServer] = None
        self._pending: Set[asyncio.Task[None]] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._initialised = False

    @property
    def config(self) -> LinkConfig:
        return self._config

    @property
    def health(self) -> HealthReporter:
        return self._health

    @property
    def voice(self) -> Optional[VoiceSession]:
        return self._voice

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def init(self) -> None:
        if self._initialised:
            return

        self._unsubscribe = self.connection.subscribe(self._on_connection_state)
        await self._health.update("serial", False, self.connection.state.value)
        await self._health.update("voice", True, VoiceState.IDLE.value)

        health_config = self._config.health
        if health_config.enabled:
            self._health_server = HealthServer(
                self._health,
                health_config.host,
                health_config.port,
                telemetry=self.telemetry_payload,
            )
            await self._health_server.start()

        self._initialised = True
        LOGGER.info("Device session initialised")

    async def shutdown(self) -> None:
        if not self._initialised:
            return
        self._initialised = False

        await self.stop_voice()
        await self.connection.disconnect()

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None

        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        LOGGER.info("Device session shut down")

    # ------------------------------------------------------------------
    # Connection and commands
    # ------------------------------------------------------------------
    async def connect(self) -> None:
        await self.connection.connect()

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    async def send(self, command: Command) -> None:
        await self.connection.write(command)

    async def send_all(self, commands: Iterable[Command]) -> None:
        for command in commands:
            await self.connection.write(command)

    async def toggle_gpio(self, pin: int) -> None:
        await self.send(self.gpio.toggle(pin))

    async def set_all_gpio(self, level: bool) -> None:
        await self.send_all(self.gpio.set_all(level))

    async def apply_servo_preset(self, name: str) -> None:
        await self.send_all(servo_preset(name))

    # ------------------------------------------------------------------
    # Voice control
    # ------------------------------------------------------------------
    def start_voice(self) -> VoiceSession:
        """Start listening; returns the already running session if any."""

        if self._voice is not None and self._voice.is_listening:
            return self._voice

        session = VoiceSession(
            self.interpreter,
            self.send,
            continuous=self._config.voice.continuous,
        )
        session.start()
        self._voice = session
        self._voice_task = asyncio.create_task(
            self._run_voice(session), name="pico-link-voice"
        )
        self._schedule_health_update("voice", True, VoiceState.LISTENING.value)
        return session

    async def stop_voice(self, *, drain: bool = False) -> None:
        """Stop listening, optionally after handling already queued utterances."""

        session = self._voice
        task = self._voice_task
        if session is None:
            return

        if drain:
            session.finish()
        else:
            session.stop()

        if task is not None:
            await task
        self._voice = None
        self._voice_task = None

    def submit_utterance(self, text: str) -> bool:
        """Queue a typed or recognised utterance as a final result."""

        session = self._voice
        if session is None or not session.is_listening:
            LOGGER.warning("Voice control is not listening; dropping %r", text)
            return False
        session.submit(FinalResult(text))
        return True

    async def _run_voice(self, session: VoiceSession) -> None:
        try:
            await session.run()
        finally:
            healthy = session.last_error is None
            detail = session.last_error or VoiceState.IDLE.value
            await self._health.update("voice", healthy, detail)

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------
    def telemetry_snapshot(self) -> Mapping[str, str]:
        return self.telemetry.snapshot()

    def history_snapshot(self) -> Tuple[TelemetrySample, ...]:
        return self.telemetry.history_snapshot()

    def clear_history(self) -> None:
        self.telemetry.clear_history()

    def export_history(self, path: Optional[Path] = None) -> Path:
        """Write the telemetry history to CSV and return the file path."""

        if path is None:
            filename = f"telemetry_{int(time.time() * 1000)}.csv"
            path = self._config.telemetry.export_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8", newline="") as stream:
            rows = self.telemetry.export_csv(stream)
        LOGGER.info("Exported %d telemetry rows to %s", rows, path)
        return path

    def telemetry_payload(self) -> Dict[str, Any]:
        history: List[Dict[str, str]] = [
            sample.as_dict() for sample in self.telemetry.history_snapshot()
        ]
        return {
            "connection": self.connection.state.value,
            "latest": dict(self.telemetry.snapshot()),
            "history": history,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _on_connection_state(self, state: ConnectionState) -> None:
        detail = state.value
        error = self.connection.last_error
        if state is ConnectionState.DISCONNECTED and error is not None:
            detail = f"{state.value}: {error}"
        self._schedule_health_update(
            "serial", state is ConnectionState.CONNECTED, detail
        )

    def _schedule_health_update(
        self, name: str, healthy: bool, detail: Optional[str]
    ) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        task = loop.create_task(self._health.update(name, healthy, detail))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    async def run(self, utterances: Optional[TextIO] = None) -> int:
        """Connect and listen until ``utterances`` is exhausted or cancelled.

        Each non-empty line read from ``utterances`` is treated as a final
        speech result. Without a stream the session runs until cancelled.
        """

        await self.init()
        try:
            try:
                await self.connect()
            except (PermissionDeniedError, DeviceUnavailableError) as exc:
                LOGGER.error("Unable to connect: %s", exc)
                return 1

            self.start_voice()
            if utterances is None:
                await asyncio.Event().wait()
                return 0

            while True:
                line = await asyncio.to_thread(utterances.readline)
                if not line:
                    break
                if line.strip():
                    self.submit_utterance(line)

            await self.stop_voice(drain=True)
            return 0
        finally:
            await self.shutdown()

    @classmethod
    def start(
        cls, config: Optional[LinkConfig] = None, utterances: Optional[TextIO] = None
    ) -> int:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_serial=instance._config.logging.log_serial,
        )
        try:
            return asyncio.run(instance.run(utterances))
        except KeyboardInterrupt:
            LOGGER.info("pico-link received shutdown signal")
            return 0
