"""Control errors raised when an operation is invalid for the current state.

They are surfaced to the caller as-is and never retried. The HTTP layer maps
every :class:`ControlError` to a ``400`` response carrying ``message``.
"""

from __future__ import annotations


class ControlError(Exception):
    """Base class for user-facing control errors."""

    message = "Operation is not allowed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.message
        super().__init__(self.message)


class AlreadyRunning(ControlError):
    message = "Indexing is already running"


class NotRunning(ControlError):
    message = "Indexing is not running"


class InvalidScope(ControlError):
    message = "This page is outside the sites listed in the configuration"


class EmptyQuery(ControlError):
    message = "Empty search query"


class NoLemmas(ControlError):
    message = "The query contains no searchable words"
