"""
Domain exception taxonomy.

Terminal call outcomes are raised from deep inside a flow and caught once by
the orchestrator, which owns the single announce-and-hang-up exit.
"""

from typing import Any


class IvrError(Exception):
    """Base exception for call-flow failures that end the call."""

    #: Text catalog key announced to the caller before hanging up.
    message_key: str = "GENERAL.ERROR"

    def __init__(self, message: str, message_key: str | None = None, **params: Any) -> None:
        super().__init__(message)
        if message_key is not None:
            self.message_key = message_key
        self.params = params


class IdentificationError(IvrError):
    """Caller (or proxy target class) could not be resolved."""

    message_key = "STUDENT.NOT_FOUND"


class MaxAttemptsExceeded(IvrError):
    """An input step was answered invalidly too many times."""

    message_key = "GENERAL.MAX_ATTEMPTS_REACHED"

    def __init__(self, step_name: str, attempts: int) -> None:
        super().__init__(f"Step {step_name!r} failed after {attempts} attempts")
        self.step_name = step_name
        self.attempts = attempts


class NoDataError(IvrError):
    """A catalog the flow depends on is empty."""

    message_key = "GENERAL.NO_DATA"


class PersistenceError(Exception):
    """Base exception for persistence errors."""

    pass


class TransactionError(PersistenceError):
    """Error during transaction execution."""

    pass


class NotFoundError(PersistenceError):
    """Entity not found error."""

    pass
