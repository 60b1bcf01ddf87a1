#!/usr/bin/env python3
"""
Satela Voice Service.
Main orchestrator: wires the engine to its collaborators and serializes
every input through one inbox queue consumed by a single thread.
"""

import argparse
import os
import queue
import threading
import time
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from satela import i18n
from satela.api.server import create_api
from satela.config_loader import SatelaConfig, load_config_yaml
from satela.engine import (
    DialogueEngine,
    DialogueTiming,
    FragmentReceived,
    RecognitionFailed,
    SessionControl,
)
from satela.event_bus import EventBus, get_event_bus
from satela.history import Command, CommandHistory
from satela.interpreter import CommandInterpreter
from satela.scheduler import Scheduler, ThreadingScheduler
from satela.state_machine import DialogueState, DialogueStateMachine
from satela.transcript import ConsoleTranscriptSource, ManualTranscriptSource, TranscriptSource
from satela.tts.base import ResponseSynthesizer, create_synthesizer, locale_tag
from satela.utils import satela_log, set_log_level, setup_crash_protection, thread_safe_loop
from satela.wake_word import WakeWordDetector


def create_transcript_source(name: str) -> TranscriptSource:
    if name == "manual":
        return ManualTranscriptSource()
    return ConsoleTranscriptSource()


class SatelaService:
    """Главный сервис голосового ассистента Сатела."""

    _CONTROL_TIMEOUT = 5.0

    def __init__(
        self,
        config: Optional[SatelaConfig] = None,
        source: Optional[TranscriptSource] = None,
        synthesizer: Optional[ResponseSynthesizer] = None,
        scheduler: Optional[Scheduler] = None,
        event_bus: Optional[EventBus] = None,
        background: bool = True,
    ):
        self.config = config or SatelaConfig()
        set_log_level(self.config.log_level)
        i18n.setup(self.config.language, fallback="en" if self.config.language != "en" else "ru")

        self.event_bus = event_bus or get_event_bus()
        self.source = source or create_transcript_source(self.config.transcript_source)
        if synthesizer is None:
            tts_kwargs: Dict[str, Any] = {}
            if self.config.tts_provider == "pyttsx3":
                tts_kwargs = {"rate": self.config.tts_rate, "voice": self.config.tts_voice or None}
            synthesizer = create_synthesizer(self.config.tts_provider, **tts_kwargs)
        self.synthesizer = synthesizer

        if self.config.wake_word_keyword:
            detector = WakeWordDetector(self.config.wake_word_keyword)
        else:
            detector = WakeWordDetector(i18n.t("wake_word.keyword"), i18n.t_list("wake_word.aliases"))

        self.command_history = CommandHistory()
        self.state_machine = DialogueStateMachine(self.event_bus)
        self.engine = DialogueEngine(
            source=self.source,
            synthesizer=self.synthesizer,
            scheduler=scheduler or ThreadingScheduler(),
            detector=detector,
            interpreter=CommandInterpreter(),
            history=self.command_history,
            state_machine=self.state_machine,
            event_bus=self.event_bus,
            timing=DialogueTiming(
                thinking_delay=self.config.thinking_delay,
                speaking_delay=self.config.speaking_delay,
                deactivation_delay=self.config.deactivation_delay,
            ),
            locale=locale_tag(self.config.language),
            no_speech_policy=self.config.no_speech_policy,
        )
        self.engine.bind(self._post)

        self.background = background
        self.is_running = False
        self._inbox: queue.Queue = queue.Queue()
        self._dispatch_lock = threading.RLock()
        self._consumer_stop = threading.Event()
        self._consumer_thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Service lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Start the event bus and the inbox consumer."""
        if self.is_running:
            return
        self.event_bus.start()
        self.is_running = True
        if self.background:
            self._consumer_stop.clear()
            self._consumer_thread = threading.Thread(
                target=thread_safe_loop,
                args=("ENGINE", self._consume_once, self._consumer_stop, 0.1),
                name="satela-engine",
                daemon=True,
            )
            self._consumer_thread.start()
        satela_log("SATELA", "Satela Voice Service started")

    def stop(self):
        """Close any session and stop background threads."""
        self.stop_session()
        self.is_running = False
        self._consumer_stop.set()
        if self._consumer_thread is not None:
            self._consumer_thread.join(timeout=2.0)
            self._consumer_thread = None
        close = getattr(self.synthesizer, "close", None)
        if close is not None:
            close()
        self.event_bus.stop()
        satela_log("SATELA", "Satela Voice Service stopped")

    @property
    def _consumer_alive(self) -> bool:
        return self._consumer_thread is not None and self._consumer_thread.is_alive()

    def _post(self, event: Any) -> None:
        """Queue an event for the consumer, or handle it inline without one."""
        if self._consumer_alive:
            self._inbox.put(event)
        else:
            self._dispatch(event)

    def _dispatch(self, event: Any) -> None:
        with self._dispatch_lock:
            try:
                self.engine.dispatch(event)
            finally:
                if isinstance(event, SessionControl):
                    event.done.set()

    def _consume_once(self):
        try:
            event = self._inbox.get(timeout=0.1)
        except queue.Empty:
            return
        try:
            self._dispatch(event)
        finally:
            self._inbox.task_done()

    def _control(self, action: str) -> Any:
        control = SessionControl(action)
        self._post(control)
        if not control.done.wait(self._CONTROL_TIMEOUT):
            satela_log("SESSION", f"Session '{action}' timed out", level="ERROR")
            return False
        return control.result

    # ------------------------------------------------------------------
    # Session controls
    # ------------------------------------------------------------------

    def start_session(self) -> bool:
        """Turn the microphone on. False if recognition is unsupported."""
        return bool(self._control("start"))

    def stop_session(self) -> None:
        """Turn the microphone off; pending timers are cancelled."""
        self._control("stop")

    def submit_final_transcript(self, text: str) -> None:
        self._post(FragmentReceived(0, text, True))

    def submit_interim_transcript(self, text: str) -> None:
        self._post(FragmentReceived(0, text, False))

    def report_recognition_error(self, code: str) -> None:
        self._post(RecognitionFailed(code))

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def state(self) -> DialogueState:
        return self.state_machine.state

    @property
    def is_active(self) -> bool:
        return self.engine.active

    def history(self) -> List[Command]:
        return self.command_history.list()

    def wait_until_settled(self, timeout: Optional[float] = None, poll: float = 0.2) -> bool:
        """Block until every queued event is handled and no timer is pending."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._dispatch_lock:
                if self._inbox.unfinished_tasks == 0 and not self.engine.scheduler.pending():
                    return True
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(poll)

    def status(self) -> Dict[str, Any]:
        data = self.engine.status()
        data["is_running"] = self.is_running
        data["language"] = self.config.language
        return data


def main(argv: Optional[List[str]] = None) -> int:
    """Запуск сервиса Сатела из консоли."""
    parser = argparse.ArgumentParser(description="Satela voice assistant")
    parser.add_argument("--config", default="config.yaml", help="Path to the YAML config")
    parser.add_argument("--no-api", action="store_true", help="Do not start the HTTP API")
    args = parser.parse_args(argv)

    setup_crash_protection()
    load_dotenv(os.path.join(os.getcwd(), ".env"))

    config = SatelaConfig.from_yaml(load_config_yaml(args.config))
    config.print_config_banner()

    service = SatelaService(config)
    api = None
    try:
        service.start()
        if config.api_enabled and not args.no_api:
            api = create_api(service, host=config.api_host, port=config.api_port)
            api.start()

        if not service.start_session():
            satela_log("SATELA", i18n.t("session.unsupported"), level="ERROR")
            return 1
        satela_log("SATELA", "Ctrl+C для остановки")

        # Консольный источник завершается на EOF; ручной живёт до Ctrl+C
        wait_exhausted = getattr(service.source, "wait_exhausted", None)
        while True:
            if wait_exhausted is None:
                time.sleep(1.0)
            elif wait_exhausted(timeout=1.0):
                service.wait_until_settled()
                break
    except KeyboardInterrupt:
        satela_log("SATELA", "[BYE] Останавливаюсь...")
    finally:
        if api is not None:
            api.stop()
        service.stop()
    return 0
