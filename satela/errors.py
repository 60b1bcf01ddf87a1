"""Error types raised inside the Satela core."""

NO_SPEECH = "no-speech"


class SatelaError(Exception):
    """Base class for Satela errors."""


class UnsupportedEnvironment(SatelaError):
    """Speech recognition is not available, so a session cannot start."""


class RecognitionError(SatelaError):
    """Transport-level failure reported by a transcript source."""

    def __init__(self, code: str, message: str = ""):
        self.code = code
        super().__init__(message or f"recognition error: {code}")

    @property
    def is_no_speech(self) -> bool:
        return self.code == NO_SPEECH


class InvalidTransition(SatelaError):
    """A dialogue state change that the state machine does not allow."""

    def __init__(self, old_state, new_state):
        self.old_state = old_state
        self.new_state = new_state
        super().__init__(f"illegal transition {old_state} → {new_state}")
