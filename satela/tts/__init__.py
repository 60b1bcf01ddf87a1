"""Response synthesizers (speech output collaborators)."""

from satela.tts.base import LogSynthesizer, ResponseSynthesizer, create_synthesizer, locale_tag

__all__ = [
    "LogSynthesizer",
    "ResponseSynthesizer",
    "create_synthesizer",
    "locale_tag",
]
