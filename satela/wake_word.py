#!/usr/bin/env python3
"""Text-based wake word detection on finalized transcripts.

Usage:
    detector = WakeWordDetector("сатела")

    # Feed finalized transcripts while the assistant is inactive:
    if detector.detect("Сатела, ты тут?"):
        print("Wake word detected!")
"""

from typing import Iterable, List, Optional

from satela.utils import satela_log


class WakeWordDetector:
    """Case-insensitive substring match of one or more activation phrases."""

    def __init__(self, keyword: str = "сатела", aliases: Optional[Iterable[str]] = None) -> None:
        phrases = [keyword] + list(aliases or [])
        self.phrases: List[str] = []
        for phrase in phrases:
            cleaned = str(phrase or "").strip().lower()
            if cleaned and cleaned not in self.phrases:
                self.phrases.append(cleaned)
        if not self.phrases:
            raise ValueError("wake word phrase must not be empty")

    @property
    def keyword(self) -> str:
        return self.phrases[0]

    def detect(self, transcript: str) -> bool:
        """Return True iff the transcript contains an activation phrase.

        Pure: no state is kept between calls.
        """
        text = (transcript or "").lower()
        for phrase in self.phrases:
            if phrase in text:
                satela_log("WAKE", f"Wake word '{phrase}' detected in: {transcript!r}")
                return True
        return False
