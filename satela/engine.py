#!/usr/bin/env python3
"""
Dialogue engine - the single state-transition function of Satela.

All inputs arrive as events: transcript fragments, recognition errors,
end of the recognition stream, timer expirations and session controls.
dispatch() handles exactly one event at a time; the caller guarantees it
is never re-entered concurrently (see SatelaService).

Timeline of one command with default timing:
    t=0.0  final transcript     listening → thinking
    t=1.0  "speak" timer        thinking → speaking, reply spoken, history append
    t=3.0  "listen" timer       speaking → listening
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from satela.errors import InvalidTransition, RecognitionError, UnsupportedEnvironment
from satela.event_bus import EventBus, EventType
from satela.history import Command, CommandHistory
from satela.i18n import t
from satela.interpreter import CommandInterpreter, Interpretation
from satela.scheduler import Scheduler, TimerFired
from satela.state_machine import DialogueState, DialogueStateMachine
from satela.transcript import TranscriptSource, TranscriptTurn
from satela.tts.base import ResponseSynthesizer
from satela.utils import satela_log
from satela.wake_word import WakeWordDetector

TIMER_SPEAK = "speak"
TIMER_LISTEN = "listen"
TIMER_DEACTIVATE = "deactivate"


# ----------------------------------------------------------------------
# Engine events
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class FragmentReceived:
    index: int
    text: str
    is_final: bool


@dataclass(frozen=True)
class RecognitionFailed:
    code: str


@dataclass(frozen=True)
class StreamEnded:
    pass


@dataclass
class SessionControl:
    """Start/stop request; the result is filled in once handled."""
    action: str
    result: Any = None
    done: threading.Event = field(default_factory=threading.Event)


@dataclass(frozen=True)
class DialogueTiming:
    thinking_delay: float = 1.0
    speaking_delay: float = 2.0
    deactivation_delay: float = 2.0

    def __post_init__(self):
        if self.deactivation_delay <= self.thinking_delay:
            raise ValueError(
                f"deactivation_delay ({self.deactivation_delay}) must be greater than "
                f"thinking_delay ({self.thinking_delay})"
            )


class EngineSink:
    """TranscriptSink that turns source callbacks into engine events."""

    def __init__(self, post: Callable[[Any], None]):
        self._post = post

    def on_fragment(self, index: int, text: str, is_final: bool) -> None:
        self._post(FragmentReceived(index, text, is_final))

    def on_error(self, code: str) -> None:
        self._post(RecognitionFailed(code))

    def on_end(self) -> None:
        self._post(StreamEnded())


class DialogueEngine:
    """Wake word → command → reply loop driven by dispatch()."""

    def __init__(
        self,
        source: TranscriptSource,
        synthesizer: ResponseSynthesizer,
        scheduler: Scheduler,
        detector: WakeWordDetector,
        interpreter: CommandInterpreter,
        history: Optional[CommandHistory] = None,
        state_machine: Optional[DialogueStateMachine] = None,
        event_bus: Optional[EventBus] = None,
        timing: Optional[DialogueTiming] = None,
        locale: str = "ru-RU",
        no_speech_policy: str = "keep_active",
        post: Optional[Callable[[Any], None]] = None,
    ):
        self.source = source
        self.synthesizer = synthesizer
        self.scheduler = scheduler
        self.detector = detector
        self.interpreter = interpreter
        self.history = history if history is not None else CommandHistory()
        self.event_bus = event_bus
        self.state_machine = state_machine or DialogueStateMachine(event_bus)
        self.timing = timing or DialogueTiming()
        self.locale = locale
        self.no_speech_policy = no_speech_policy

        self.active = False
        self.session_open = False
        self.current_text = ""

        self._turn = TranscriptTurn()
        self._in_flight: Optional[Tuple[str, Interpretation]] = None
        self._speak_task: Optional[int] = None
        self._listen_task: Optional[int] = None
        self._deactivate_task: Optional[int] = None

        self._post: Callable[[Any], None] = post or self.dispatch
        self.sink = EngineSink(lambda event: self._post(event))
        self.scheduler.bind(lambda event: self._post(event))

    def bind(self, post: Callable[[Any], None]) -> None:
        """Route source callbacks and timer expirations through post."""
        self._post = post

    @property
    def state(self) -> DialogueState:
        return self.state_machine.state

    def _publish(self, event_type: EventType, payload: Optional[Dict[str, Any]] = None):
        if self.event_bus is not None:
            self.event_bus.publish(event_type, payload or {}, source='engine')

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    def dispatch(self, event: Any) -> None:
        """Handle one event. Illegal state moves are logged and dropped."""
        try:
            if isinstance(event, FragmentReceived):
                self._on_fragment(event)
            elif isinstance(event, TimerFired):
                self._on_timer(event)
            elif isinstance(event, RecognitionFailed):
                self._on_recognition_error(event.code)
            elif isinstance(event, StreamEnded):
                self._on_stream_end()
            elif isinstance(event, SessionControl):
                self._on_control(event)
            else:
                satela_log("ENGINE", f"Unknown event ignored: {event!r}", level="WARNING")
        except InvalidTransition as e:
            satela_log("STATE", f"{e}; event {type(event).__name__} dropped", level="WARNING")

    def _on_control(self, control: SessionControl) -> None:
        if control.action == "start":
            control.result = self.start_session()
        elif control.action == "stop":
            self.stop_session()
            control.result = True
        else:
            satela_log("SESSION", f"Unknown session action '{control.action}'", level="WARNING")
            control.result = False

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def _open_source(self) -> None:
        if not self.source.is_available():
            raise UnsupportedEnvironment(t("session.unsupported"))
        self.source.start(self.sink)

    def start_session(self) -> bool:
        """Open the microphone. False (and nothing recorded) if unsupported."""
        if self.session_open:
            return True
        try:
            self._open_source()
        except UnsupportedEnvironment as e:
            satela_log("SESSION", str(e), level="ERROR")
            self._publish(EventType.SESSION_FAILED, {'reason': str(e)})
            return False

        self.session_open = True
        self.active = False
        self._turn.reset()
        satela_log("SESSION", t("session.started", wake_word=self.detector.keyword))
        self._publish(EventType.SESSION_STARTED, {'wake_word': self.detector.keyword})
        return True

    def stop_session(self, reason: str = "session stopped") -> None:
        """Close the microphone: cancel timers, release the source, go idle."""
        self.scheduler.cancel_all()
        self._speak_task = self._listen_task = self._deactivate_task = None
        self.source.stop()

        was_open = self.session_open
        self.session_open = False
        self.active = False
        self._in_flight = None
        self._turn.reset()
        self.current_text = ""
        self.state_machine.force_idle(reason)

        if was_open:
            satela_log("SESSION", t("session.stopped"))
            self._publish(EventType.SESSION_STOPPED, {'reason': reason})

    # ------------------------------------------------------------------
    # Transcripts
    # ------------------------------------------------------------------

    def _on_fragment(self, event: FragmentReceived) -> None:
        if not self.session_open:
            satela_log("RECOGNITION", f"Session closed, fragment ignored: {event.text!r}", level="DEBUG")
            return

        candidate = self._turn.update(event.index, event.text)
        self.current_text = candidate
        self._publish(EventType.TRANSCRIPT_UPDATED, {'text': candidate, 'final': event.is_final})

        # Interim text is display-only
        if not event.is_final:
            return

        self._turn.reset()
        if self.active:
            self._accept_utterance(candidate)
        elif self.detector.detect(candidate):
            self._activate()

    def _activate(self) -> None:
        self.state_machine.transition(DialogueState.LISTENING, "wake word")
        self.active = True
        self.current_text = ""
        satela_log("WAKE", t("session.activated"))
        self._publish(EventType.WAKE_WORD_DETECTED, {'wake_word': self.detector.keyword})
        self.synthesizer.speak(t("responses.acknowledge"), self.locale)

    def _accept_utterance(self, text: str) -> None:
        state = self.state_machine.state
        if state in (DialogueState.THINKING, DialogueState.SPEAKING):
            satela_log("COMMAND", f"Busy ({state}), utterance dropped: {text!r}", level="INFO")
            return
        if state == DialogueState.IDLE:
            # Active but idle only after a no-speech error with keep_active
            self.state_machine.transition(DialogueState.LISTENING, "resume after no-speech")

        self.state_machine.transition(DialogueState.THINKING, "utterance accepted")
        interpretation = self.interpreter.match(text)
        self._in_flight = (text, interpretation)
        satela_log(
            "COMMAND",
            f"{text!r} → {interpretation.rule} [{interpretation.category}]: {interpretation.response}",
        )

        self._speak_task = self.scheduler.schedule(self.timing.thinking_delay, TIMER_SPEAK)
        if interpretation.deactivate and self._deactivate_task is None:
            self._deactivate_task = self.scheduler.schedule(self.timing.deactivation_delay, TIMER_DEACTIVATE)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _on_timer(self, event: TimerFired) -> None:
        if not self.scheduler.consume(event.task_id):
            satela_log("TIMER", f"Stale {event.kind} #{event.task_id} ignored", level="DEBUG")
            return

        if event.kind == TIMER_SPEAK:
            self._speak_task = None
            self._speak_response()
        elif event.kind == TIMER_LISTEN:
            self._listen_task = None
            self.state_machine.transition(DialogueState.LISTENING, "ready for next command")
        elif event.kind == TIMER_DEACTIVATE:
            self._deactivate_task = None
            satela_log("SESSION", "Deactivation command, closing session")
            self._publish(EventType.DEACTIVATED, {})
            self.stop_session("deactivated by command")
        else:
            satela_log("TIMER", f"Unknown timer kind '{event.kind}'", level="WARNING")

    def _speak_response(self) -> None:
        if self._in_flight is None:
            satela_log("COMMAND", "Speak timer fired with nothing in flight", level="WARNING")
            return
        text, interpretation = self._in_flight
        self.state_machine.transition(DialogueState.SPEAKING, interpretation.rule)
        self._in_flight = None

        self.synthesizer.speak(interpretation.response, self.locale)
        command = Command(
            text=text,
            response=interpretation.response,
            category=interpretation.category,
            rule=interpretation.rule,
        )
        self.history.append(command)
        self.current_text = ""
        self._publish(EventType.COMMAND_PROCESSED, command.to_dict())
        self._publish(EventType.RESPONSE_SPOKEN, {'text': interpretation.response, 'locale': self.locale})

        self._listen_task = self.scheduler.schedule(self.timing.speaking_delay, TIMER_LISTEN)

    # ------------------------------------------------------------------
    # Recognition errors / stream end
    # ------------------------------------------------------------------

    def _on_recognition_error(self, code: str) -> None:
        error = RecognitionError(code)
        self._publish(EventType.ERROR_RECOGNITION, {'code': code})
        if not error.is_no_speech:
            satela_log("RECOGNITION", str(error), level="ERROR")
            return

        satela_log("RECOGNITION", f"No speech detected (policy: {self.no_speech_policy})")
        for task_id in (self._speak_task, self._listen_task):
            if task_id is not None:
                self.scheduler.cancel(task_id)
        self._speak_task = self._listen_task = None
        self._in_flight = None
        if self.no_speech_policy == "deactivate":
            self.active = False
        self.state_machine.force_idle("no speech")

    def _on_stream_end(self) -> None:
        if not self.session_open:
            return
        satela_log("RECOGNITION", "Recognition stream ended, restarting")
        try:
            self._open_source()
        except UnsupportedEnvironment as e:
            satela_log("RECOGNITION", f"Cannot restart recognition: {e}", level="ERROR")
            self.stop_session("recognition unavailable")

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        state = self.state_machine.state
        return {
            "state": state.value,
            "state_text": t(f"states.{state.value}"),
            "active": self.active,
            "session_open": self.session_open,
            "time_in_state": round(self.state_machine.time_in_state(), 1),
            "current_text": self.current_text,
            "history_count": len(self.history),
            "pending_timers": [task.kind for task in self.scheduler.pending()],
            "wake_word": self.detector.keyword,
        }
