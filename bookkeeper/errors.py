"""
Validation errors raised by the parsing and drafting stages.

Each exception carries the ErrorKind it maps to and whatever partial data
had been understood when it was raised. The orchestrator converts these
into terminal outcomes; they never cross the public boundary.
"""

from typing import Optional

from bookkeeper.models.transaction import ErrorKind, PartialData


class BookkeepingError(Exception):
    """Base exception for message-processing failures."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(self, message: str, partial_data: Optional[PartialData] = None):
        self.message = message
        self.partial_data = partial_data or PartialData()
        super().__init__(message)


class EmptyMessageError(BookkeepingError):
    """Message is empty or whitespace only."""
    kind = ErrorKind.EMPTY_MESSAGE


class FormatNotRecognizedError(BookkeepingError):
    """Message contains no amount."""
    kind = ErrorKind.FORMAT_NOT_RECOGNIZED


class MissingSubjectError(BookkeepingError):
    """Nothing precedes the amount."""
    kind = ErrorKind.MISSING_SUBJECT


class UnknownSubjectError(BookkeepingError):
    """No resolver tier matched the subject."""
    kind = ErrorKind.UNKNOWN_SUBJECT


class InvalidAmountError(BookkeepingError):
    """Amount is negative or zero."""
    kind = ErrorKind.INVALID_AMOUNT
