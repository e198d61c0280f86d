from dataclasses import dataclass
from typing import Generic, TypeVar

from ticketpay.domain.exceptions import ErrorKind

T = TypeVar("T")


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    message: str

    @property
    def http_status(self) -> int:
        return self.kind.http_status


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    """
    Outcome of an engine operation.

    Plain success carries a value. An already-satisfied success
    (idempotent replay) carries the value and a notice kind.
    A failure carries a ServiceError and, optionally, the record it concerns.
    """

    value: T | None = None
    error: ServiceError | None = None
    notice: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def already_satisfied(self) -> bool:
        return self.notice is not None

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(value=value)

    @classmethod
    def satisfied(cls, value: T, notice: ErrorKind) -> "OperationResult[T]":
        return cls(value=value, notice=notice)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        value: T | None = None,
    ) -> "OperationResult[T]":
        return cls(value=value, error=ServiceError(kind=kind, message=message))
