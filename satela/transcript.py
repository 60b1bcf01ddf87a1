#!/usr/bin/env python3
"""Transcript sources: where recognized speech enters the core.

A source owns its recognition handle. The engine start()s it when a
session opens, stop()s it when the session closes, and receives
fragments through a TranscriptSink.
"""

import sys
import threading
from typing import Dict, Optional, Protocol, TextIO

from satela.utils import satela_log

# Error code reported when the console stream itself cannot be read
READ_ERROR = "input-error"


class TranscriptSink(Protocol):
    """Callbacks a source uses to deliver recognition results."""

    def on_fragment(self, index: int, text: str, is_final: bool) -> None:
        ...

    def on_error(self, code: str) -> None:
        ...

    def on_end(self) -> None:
        ...


class TranscriptSource(Protocol):
    """A live, possibly revised stream of recognized text."""

    def is_available(self) -> bool:
        ...

    def start(self, sink: TranscriptSink) -> None:
        ...

    def stop(self) -> None:
        ...


class TranscriptTurn:
    """Fragments of the current recognition turn, keyed by fragment index.

    A revised fragment replaces the one with the same index; the candidate
    text is always the concatenation of all fragments in index order.
    """

    def __init__(self):
        self._fragments: Dict[int, str] = {}

    def update(self, index: int, text: str) -> str:
        self._fragments[index] = text or ""
        return self.text

    @property
    def text(self) -> str:
        return "".join(self._fragments[i] for i in sorted(self._fragments))

    def reset(self) -> None:
        self._fragments.clear()

    def __bool__(self) -> bool:
        return bool(self._fragments)


class ManualTranscriptSource:
    """Source fed programmatically (REST API, tests, other front ends)."""

    def __init__(self, available: bool = True):
        self._available = available
        self._sink: Optional[TranscriptSink] = None
        self._lock = threading.Lock()
        self.start_count = 0

    def is_available(self) -> bool:
        return self._available

    @property
    def is_started(self) -> bool:
        with self._lock:
            return self._sink is not None

    def start(self, sink: TranscriptSink) -> None:
        with self._lock:
            self._sink = sink
            self.start_count += 1

    def stop(self) -> None:
        with self._lock:
            self._sink = None

    def _current_sink(self) -> Optional[TranscriptSink]:
        with self._lock:
            return self._sink

    def feed(self, text: str, is_final: bool = True, index: int = 0) -> bool:
        """Deliver a fragment; False if the source is not started."""
        sink = self._current_sink()
        if sink is None:
            satela_log("RECOGNITION", f"Source stopped, dropping fragment: {text!r}", level="DEBUG")
            return False
        sink.on_fragment(index, text, is_final)
        return True

    def fail(self, code: str) -> bool:
        sink = self._current_sink()
        if sink is None:
            return False
        sink.on_error(code)
        return True

    def end(self) -> bool:
        """Simulate the recognizer ending its stream."""
        sink = self._current_sink()
        if sink is None:
            return False
        with self._lock:
            self._sink = None
        sink.on_end()
        return True


class ConsoleTranscriptSource:
    """Reads utterances from a text stream, one finalized transcript per line.

    Line prefixes:
        ~text   interim fragment (display only)
        !code   recognition error with the given code (e.g. !no-speech)
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream or sys.stdin
        # Undecodable bytes become U+FFFD instead of killing the reader
        reconfigure = getattr(self._stream, "reconfigure", None)
        if reconfigure is not None:
            try:
                reconfigure(errors="replace")
            except (OSError, ValueError) as e:
                satela_log("RECOGNITION", f"Cannot relax input decoding: {e}", level="WARNING")
        self._sink: Optional[TranscriptSink] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._eof = threading.Event()

    def is_available(self) -> bool:
        return not self._eof.is_set() and self._stream is not None and not self._stream.closed

    @property
    def exhausted(self) -> bool:
        return self._eof.is_set()

    def wait_exhausted(self, timeout: Optional[float] = None) -> bool:
        return self._eof.wait(timeout)

    def start(self, sink: TranscriptSink) -> None:
        if self._eof.is_set():
            satela_log("RECOGNITION", "Console input closed, not restarting")
            return
        self._sink = sink
        self._stop_event.clear()
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._read_loop, name="console-source", daemon=True)
            self._thread.start()

    def stop(self) -> None:
        # The reader thread may stay blocked in readline(); it drops lines while stopped
        self._stop_event.set()
        self._sink = None

    def _read_loop(self) -> None:
        try:
            for raw_line in self._stream:
                self._deliver_line(raw_line.strip())
        except (OSError, ValueError) as e:
            satela_log("RECOGNITION", f"Console input failed: {e}", level="ERROR")
            sink = self._sink
            if sink is not None:
                sink.on_error(READ_ERROR)
        finally:
            # EOF means the operator is done, not that recognition dropped out
            self._eof.set()
            satela_log("RECOGNITION", "Console input closed")

    def _deliver_line(self, line: str) -> None:
        sink = self._sink
        if not line or sink is None or self._stop_event.is_set():
            return
        if line.startswith("!"):
            sink.on_error(line[1:].strip())
        elif line.startswith("~"):
            sink.on_fragment(0, line[1:].strip(), False)
        else:
            sink.on_fragment(0, line, True)
