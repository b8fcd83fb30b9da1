from typing import Dict, List, Optional


class TrainerError(Exception):
    """Base class for errors raised by the training session components."""


class ConfigValidationError(TrainerError):
    """Session configuration is incomplete or names unknown options."""

    def __init__(self, missing: Optional[List[str]] = None, invalid: Optional[Dict[str, str]] = None):
        self.missing = list(missing or [])
        self.invalid = dict(invalid or {})
        parts = []
        if self.missing:
            parts.append(f"missing fields: {', '.join(self.missing)}")
        if self.invalid:
            parts.append(
                "unknown values: " + ", ".join(f"{k}={v!r}" for k, v in self.invalid.items())
            )
        super().__init__("Incomplete session configuration (" + "; ".join(parts) + ")")


class SessionNotFoundError(TrainerError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class InvalidSessionStateError(TrainerError):
    def __init__(self, session_id: str, status: str, action: str):
        self.session_id = session_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} session {session_id} in status {status}")


class LLMRequestError(TrainerError):
    """The completion endpoint could not be reached or answered with an error."""


class NoSpeechError(TrainerError):
    """The speech-to-text service returned an empty transcription."""
