"""Exceptions raised by the drilling core."""


class DrillError(Exception):
    """Base class for word drill errors."""


class EmptyWordSet(DrillError):
    """No words are available to start a session."""


class PersistenceFailure(DrillError):
    """The key-value store could not be read or written."""

    def __init__(self, key: str, action: str, cause: Exception | None = None) -> None:
        self.key = key
        self.action = action
        self.cause = cause
        super().__init__(f"Failed to {action} '{key}': {cause}")
