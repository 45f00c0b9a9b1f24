from __future__ import annotations


class CalendarError(Exception):
    """Base class for every failure the calendar core reports."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(CalendarError):
    """Local input was rejected before anything was sent to the remote store."""


class TransportError(CalendarError):
    """The request could not be completed (network failure or timeout)."""


class RemoteError(CalendarError):
    """The remote store answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(RemoteError):
    """The mutation targeted an id the remote store does not know."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=404)


class PendingMutationError(CalendarError):
    """A mutation on the same event id is still in flight."""


class ExportError(CalendarError):
    """The exported calendar could not be written to its destination."""
