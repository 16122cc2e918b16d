"""Tagged results returned by domain services instead of raising."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure categories surfaced by service operations."""

    VALIDATION = "validation"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    UNAVAILABLE = "unavailable"


@dataclass
class ServiceResult(Generic[T]):
    """Outcome of a mutating service operation.

    On success ``value`` holds the affected entity (if any); on failure
    ``error`` is a human-readable message and ``error_kind`` tags the cause.
    """

    success: bool
    value: T | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> "ServiceResult[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> "ServiceResult[T]":
        return cls(success=False, error=message, error_kind=kind)
