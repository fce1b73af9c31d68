"""Error kinds raised by the remote client and the outcome type the engine returns."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NETWORK_FAILURE = "network_failure"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION_FAILURE = "validation_failure"
    SERVICE_ERROR = "service_error"


class RemoteError(Exception):
    """Base class for failures reported by (or while reaching) the Remote File Service."""

    kind: ErrorKind = ErrorKind.SERVICE_ERROR

    def __init__(
        self,
        message: str,
        path: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.path = path
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(kind={self.kind.value}, path={self.path!r}, message={self.message!r})>"


class NetworkFailure(RemoteError):
    kind = ErrorKind.NETWORK_FAILURE


class NotFound(RemoteError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(RemoteError):
    """The supplied fingerprint no longer matches the stored one. Reload, don't retry."""

    kind = ErrorKind.CONFLICT


class ValidationFailure(RemoteError):
    kind = ErrorKind.VALIDATION_FAILURE


class ServiceError(RemoteError):
    kind = ErrorKind.SERVICE_ERROR


@dataclass
class Outcome(Generic[T]):
    """Result of a Tree Cache or File Session operation — never raised."""

    value: T | None = None
    error: RemoteError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind | None:
        return self.error.kind if self.error else None

    @property
    def is_conflict(self) -> bool:
        return self.kind == ErrorKind.CONFLICT

    @classmethod
    def success(cls, value: T | None = None) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: RemoteError) -> "Outcome[T]":
        return cls(error=error)
