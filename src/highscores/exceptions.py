"""Error taxonomy for the high scores service."""


class HighScoresError(Exception):
    """Base class for all high scores errors."""


class ValidationError(HighScoresError, ValueError):
    """Caller-supplied input violates a field constraint."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class NotFoundError(HighScoresError, LookupError):
    """Deletion target does not exist."""

    def __init__(self, score_id: str) -> None:
        super().__init__(f"Score not found: {score_id}")
        self.score_id = score_id


class CorruptStateError(HighScoresError, RuntimeError):
    """Persisted state exists but cannot be parsed into valid records."""


class PersistenceError(HighScoresError, RuntimeError):
    """The storage medium could not be read or written."""


class WriteConflictError(PersistenceError):
    """Stored state changed between reading it and writing it back."""
