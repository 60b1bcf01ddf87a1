#!/usr/bin/env python3
"""Offline speech output through pyttsx3.

pyttsx3 blocks while it talks and dislikes being driven from several
threads, so all calls are serialized on one worker thread fed by a queue.
"""

import queue
import threading
from typing import Optional

from satela.tts.base import locale_tag
from satela.utils import satela_log


class Pyttsx3Synthesizer:
    """Fire-and-forget pyttsx3 output with a single worker thread."""

    _BASE_RATE = 180

    def __init__(self, rate: float = 1.0, voice: Optional[str] = None):
        import pyttsx3

        self._engine = pyttsx3.init()
        self.rate = rate
        self.voice = voice
        self._engine.setProperty('rate', int(self._BASE_RATE * rate))
        self._voices = self._engine.getProperty('voices') or []
        self._queue: "queue.Queue[Optional[tuple]]" = queue.Queue()
        self._thread = threading.Thread(target=self._worker, name="pyttsx3-tts", daemon=True)
        self._thread.start()
        satela_log("TTS", f"pyttsx3 ready ({len(self._voices)} voices, rate x{rate})")

    def _pick_voice(self, tag: str) -> Optional[str]:
        if self.voice:
            return self.voice
        lang = tag.split("-")[0].lower()
        for voice in self._voices:
            languages = [
                lang_item.decode("utf-8", "ignore") if isinstance(lang_item, bytes) else str(lang_item)
                for lang_item in (getattr(voice, "languages", None) or [])
            ]
            haystack = " ".join(languages + [str(getattr(voice, "id", "")), str(getattr(voice, "name", ""))]).lower()
            if lang in haystack:
                return voice.id
        return None

    def speak(self, text: str, locale: str) -> None:
        self._queue.put((text, locale_tag(locale)))

    def close(self) -> None:
        self._queue.put(None)
        self._thread.join(timeout=2.0)

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                break
            text, tag = item
            try:
                voice_id = self._pick_voice(tag)
                if voice_id:
                    self._engine.setProperty('voice', voice_id)
                self._engine.say(text)
                self._engine.runAndWait()
            except Exception as e:
                satela_log("TTS", f"pyttsx3 error: {e}", level="ERROR")
