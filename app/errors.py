"""
Error kinds and the Result type returned by services.

Services never raise for expected failures (bad input, missing rows,
rejected state changes). They return a ``Result`` and the routers turn
the error kind into an HTTP status.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure categories surfaced at the HTTP boundary."""

    VALIDATION = "VALIDATION"
    MALFORMED_EVENT = "MALFORMED_EVENT"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    UNAUTHORIZED = "UNAUTHORIZED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    INVALID_STATE = "INVALID_STATE"
    INTERNAL = "INTERNAL"

    @property
    def http_status(self) -> int:
        statuses = {
            self.VALIDATION: 400,
            self.MALFORMED_EVENT: 400,
            self.SIGNATURE_INVALID: 400,
            self.UNAUTHORIZED: 401,
            self.NOT_FOUND: 404,
            self.INVALID_TRANSITION: 400,
            self.INVALID_STATE: 400,
            self.INTERNAL: 500,
        }
        return statuses.get(self, 500)


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or an error kind with a human readable message."""

    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorKind, message: str) -> "Result[T]":
        return cls(error=error, message=message)

    def __repr__(self) -> str:
        if self.ok:
            return f"<Result ok {self.value!r}>"
        return f"<Result {self.error.value}: {self.message}>"
