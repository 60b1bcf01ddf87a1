"""Shared synthesizer Protocol and the provider factory."""

from collections import deque
from typing import Any, Deque, Dict, Optional, Protocol

from satela.utils import satela_log


# ── Shared constants ────────────────────────────────────────────────

# i18n locale code → BCP 47 tag handed to speech engines
LOCALE_TAGS: Dict[str, str] = {
    "ru": "ru-RU",
    "en": "en-US",
}

PROVIDERS = ("log", "pyttsx3")


def locale_tag(locale: Optional[str]) -> str:
    """Map 'ru' → 'ru-RU'; unknown or already tagged values pass through."""
    raw = str(locale or "").strip()
    if not raw:
        return "ru-RU"
    return LOCALE_TAGS.get(raw.lower(), raw)


# ── Protocol ────────────────────────────────────────────────────────

class ResponseSynthesizer(Protocol):
    """Renders response text as speech. Fire-and-forget."""

    def speak(self, text: str, locale: str) -> None:
        """Start speaking text; must return without waiting for playback."""
        ...


# ── Providers ───────────────────────────────────────────────────────

class LogSynthesizer:
    """Writes what would be spoken to the log. Keeps the last replies in spoken."""

    def __init__(self, keep: int = 50):
        self.spoken: Deque[tuple] = deque(maxlen=keep)

    def speak(self, text: str, locale: str) -> None:
        self.spoken.append((text, locale))
        satela_log("SAY", f"[{locale_tag(locale)}] {text}")


def create_synthesizer(provider: str = "log", **kwargs: Any) -> ResponseSynthesizer:
    """Build a synthesizer by provider name; unknown names fall back to log."""
    name = str(provider or "log").strip().lower()
    if name == "pyttsx3":
        from satela.tts.pyttsx3_engine import Pyttsx3Synthesizer
        return Pyttsx3Synthesizer(**kwargs)
    if name != "log":
        satela_log("TTS", f"Unknown tts.provider='{provider}', using log output", level="WARNING")
    return LogSynthesizer()
