"""Voice command grammar and listening session.

Utterances are matched against an ordered grammar table. Each rule is a
``(predicate, extractor, constructor)`` triple: the predicate looks for
keywords, the extractor pulls numeric arguments out of the utterance and the
constructor builds the command. A rule fires only when all three succeed, and
the first rule that fires wins.

Speech recognition itself happens elsewhere. Recognisers push
:class:`PartialResult`, :class:`FinalResult`, :class:`RecognitionError` and
:class:`RecognitionEnded` events into a :class:`VoiceSession`, which owns the
listening state machine and forwards recognised commands to a command sink.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple, Union

from .core.errors import LinkError, NotConnectedError
from .core.models import (
    Command,
    GpioCommand,
    MotorCommand,
    MotorDirection,
    ScanCommand,
    ServoCommand,
)
from .core.protocols import CommandSink, Speaker

LOGGER = logging.getLogger(__name__)

_FINISH = object()

NOT_RECOGNIZED = "Command not recognized"

_INTEGER = re.compile(r"\d+")
_SERVO_PATTERN = re.compile(r"servo\s*(\d+)\s*angle\s*(\d+)")

Extractor = Callable[[str], Optional[Tuple[int, ...]]]


@dataclass(frozen=True, slots=True)
class GrammarRule:
    name: str
    predicate: Callable[[str], bool]
    extractor: Extractor
    constructor: Callable[..., Command]


def contains_any(*phrases: str) -> Callable[[str], bool]:
    return lambda text: any(phrase in text for phrase in phrases)


def contains_all(*phrases: str) -> Callable[[str], bool]:
    return lambda text: all(phrase in text for phrase in phrases)


def no_arguments(text: str) -> Tuple[int, ...]:
    return ()


def first_integer(text: str) -> Optional[Tuple[int, ...]]:
    match = _INTEGER.search(text)
    if match is None:
        return None
    return (int(match.group()),)


def servo_arguments(text: str) -> Optional[Tuple[int, ...]]:
    match = _SERVO_PATTERN.search(text)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def _motor(direction: MotorDirection) -> Callable[[], Command]:
    return lambda: MotorCommand(direction)


DEFAULT_GRAMMAR: Tuple[GrammarRule, ...] = (
    GrammarRule(
        "forward",
        contains_any("forward", "go ahead"),
        no_arguments,
        _motor(MotorDirection.FORWARD),
    ),
    GrammarRule(
        "backward",
        contains_any("backward", "go back"),
        no_arguments,
        _motor(MotorDirection.BACKWARD),
    ),
    GrammarRule("left", contains_any("left"), no_arguments, _motor(MotorDirection.LEFT)),
    GrammarRule(
        "right", contains_any("right"), no_arguments, _motor(MotorDirection.RIGHT)
    ),
    GrammarRule("stop", contains_any("stop"), no_arguments, _motor(MotorDirection.STOP)),
    GrammarRule(
        "gpio_on",
        contains_all("gpio", "on"),
        first_integer,
        lambda pin: GpioCommand(pin=pin, level=True),
    ),
    GrammarRule(
        "gpio_off",
        contains_all("gpio", "off"),
        first_integer,
        lambda pin: GpioCommand(pin=pin, level=False),
    ),
    GrammarRule(
        "servo",
        contains_any("servo"),
        servo_arguments,
        lambda servo_id, angle: ServoCommand(servo_id=servo_id, angle=angle),
    ),
    GrammarRule("scan", contains_any("scan"), no_arguments, ScanCommand),
)


def normalize_utterance(text: str) -> str:
    return text.strip().lower()


def describe_command(command: Command) -> str:
    """Short spoken acknowledgement for a recognised command."""

    if isinstance(command, MotorCommand):
        return {
            MotorDirection.FORWARD: "Moving forward",
            MotorDirection.BACKWARD: "Moving backward",
            MotorDirection.LEFT: "Turning left",
            MotorDirection.RIGHT: "Turning right",
            MotorDirection.STOP: "Stopping",
        }[command.direction]
    if isinstance(command, GpioCommand):
        return f"GPIO {command.pin} {'on' if command.level else 'off'}"
    if isinstance(command, ServoCommand):
        return f"Servo {command.servo_id} to {command.angle} degrees"
    return "Starting scan"


class LoggingSpeaker:
    """Speaker that writes feedback to the log instead of an audio device."""

    def speak(self, text: str) -> None:
        LOGGER.info("Speaking: %s", text)


class SilentSpeaker:
    def speak(self, text: str) -> None:
        pass


class VoiceCommandInterpreter:
    """Map finished utterances to at most one command."""

    def __init__(
        self,
        grammar: Sequence[GrammarRule] = DEFAULT_GRAMMAR,
        *,
        speaker: Optional[Speaker] = None,
    ) -> None:
        self._grammar = tuple(grammar)
        self._speaker: Speaker = speaker or LoggingSpeaker()

    @property
    def grammar(self) -> Tuple[GrammarRule, ...]:
        return self._grammar

    @property
    def speaker(self) -> Speaker:
        return self._speaker

    def match(self, utterance: str) -> Optional[Tuple[GrammarRule, Command]]:
        """Return the first rule whose keywords match, with its command.

        Evaluation stops at that rule: when its arguments are missing or
        invalid the utterance is unrecognised.
        """

        text = normalize_utterance(utterance)
        rule = next((rule for rule in self._grammar if rule.predicate(text)), None)
        if rule is None:
            return None

        arguments = rule.extractor(text)
        if arguments is None:
            LOGGER.debug("Rule %s found no arguments in %r", rule.name, text)
            return None
        try:
            command = rule.constructor(*arguments)
        except ValueError as exc:
            LOGGER.debug("Rule %s rejected %r: %s", rule.name, text, exc)
            return None
        return rule, command

    def interpret(self, utterance: str) -> Optional[Command]:
        """Return the command for ``utterance`` without any feedback."""
        matched = self.match(utterance)
        return matched[1] if matched is not None else None

    def process(self, utterance: str) -> Optional[Command]:
        """Interpret ``utterance`` and speak the outcome."""

        matched = self.match(utterance)
        if matched is None:
            LOGGER.info("Voice command not recognised: %r", utterance)
            self._speaker.speak(NOT_RECOGNIZED)
            return None

        rule, command = matched
        LOGGER.info("Voice command %r matched rule %s", utterance, rule.name)
        self._speaker.speak(describe_command(command))
        return command

    def test_speech(self) -> None:
        self._speaker.speak("Text to speech is working correctly.")


@dataclass(frozen=True, slots=True)
class PartialResult:
    text: str


@dataclass(frozen=True, slots=True)
class FinalResult:
    text: str


@dataclass(frozen=True, slots=True)
class RecognitionError:
    error: str


@dataclass(frozen=True, slots=True)
class RecognitionEnded:
    """The recogniser stopped producing results."""


RecognitionEvent = Union[PartialResult, FinalResult, RecognitionError, RecognitionEnded]


class VoiceState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"


class VoiceSession:
    """Listening session that turns recognition events into commands.

    ``start()`` moves the session to ``LISTENING``. Partial results only
    update :attr:`transcript`; final results are interpreted and any
    command is awaited on the sink. In continuous mode the session keeps
    listening after each final result; a recognition error or ``stop()``
    returns it to ``IDLE``.
    """

    def __init__(
        self,
        interpreter: VoiceCommandInterpreter,
        sink: CommandSink,
        *,
        continuous: bool = True,
    ) -> None:
        self._interpreter = interpreter
        self._sink = sink
        self._continuous = continuous
        self._state = VoiceState.IDLE
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self.transcript = ""
        self.last_utterance = ""
        self.last_error: Optional[str] = None

    @property
    def state(self) -> VoiceState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state is VoiceState.LISTENING

    def start(self) -> None:
        if self._state is VoiceState.LISTENING:
            return
        self._state = VoiceState.LISTENING
        self.last_error = None
        LOGGER.info("Voice session listening")
        self._interpreter.speaker.speak("Voice control started")

    def stop(self) -> None:
        if self._state is VoiceState.IDLE:
            return
        self._go_idle()
        self._interpreter.speaker.speak("Voice control stopped")

    def submit(self, event: RecognitionEvent) -> None:
        """Queue an event for :meth:`run`."""
        self._queue.put_nowait(event)

    def finish(self) -> None:
        """Stop once every event queued so far has been handled."""
        self._queue.put_nowait(_FINISH)

    async def run(self) -> None:
        """Dispatch queued events until the session returns to idle."""

        while self._state is VoiceState.LISTENING:
            event = await self._queue.get()
            if event is _FINISH:
                self.stop()
                break
            if event is None:
                continue
            await self.handle(event)

    async def handle(self, event: RecognitionEvent) -> Optional[Command]:
        if self._state is not VoiceState.LISTENING:
            LOGGER.debug("Ignoring %s while idle", type(event).__name__)
            return None

        if isinstance(event, PartialResult):
            self.transcript = event.text
            return None

        if isinstance(event, FinalResult):
            return await self._handle_final(event.text)

        if isinstance(event, RecognitionError):
            LOGGER.warning("Speech recognition failed: %s", event.error)
            self.last_error = event.error
            self._go_idle()
            return None

        if not self._continuous:
            self._go_idle()
        return None

    async def _handle_final(self, text: str) -> Optional[Command]:
        utterance = normalize_utterance(text)
        self.transcript = text.strip()
        if not utterance:
            return None

        self.last_utterance = utterance
        command = self._interpreter.process(utterance)
        if command is not None:
            await self._dispatch(command)
        if not self._continuous:
            self._go_idle()
        return command

    async def _dispatch(self, command: Command) -> None:
        try:
            await self._sink(command)
        except NotConnectedError:
            LOGGER.warning("Voice command dropped; device not connected")
            self._interpreter.speaker.speak("Robot is not connected")
        except LinkError as exc:
            LOGGER.warning("Voice command failed: %s", exc)
            self._interpreter.speaker.speak("Command failed")

    def _go_idle(self) -> None:
        self._state = VoiceState.IDLE
        self.transcript = ""
        LOGGER.info("Voice session idle")
        # wake run() so it can observe the transition
        self._queue.put_nowait(None)
