"""
Result-or-failure values returned by every core operation.

Expected conditions (missing rows, bad input, lost races) come back as a
``Failure``; only programming errors raise.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")

UNAUTHORIZED = "Unauthorized"
NOT_FOUND = "NotFound"
INVALID_ARGUMENT = "InvalidArgument"
INVALID_ACTION = "InvalidAction"
INVALID_POSITION = "InvalidPosition"
CONFLICT_RETRYABLE = "ConflictRetryable"

HTTP_STATUS = {
    UNAUTHORIZED: 401,
    NOT_FOUND: 404,
    INVALID_ARGUMENT: 400,
    INVALID_ACTION: 400,
    INVALID_POSITION: 400,
    CONFLICT_RETRYABLE: 409,
}


@dataclass(frozen=True)
class Failure:
    kind: str
    message: str

    def __post_init__(self) -> None:
        if self.kind not in HTTP_STATUS:
            raise ValueError(f"Unknown failure kind: {self.kind!r}")

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.kind]

    @property
    def retryable(self) -> bool:
        return self.kind == CONFLICT_RETRYABLE

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "kind": self.kind}


@dataclass
class Result(Generic[T]):
    value: T | None = None
    failure: Failure | None = None
    # (scope, id) pairs to announce once the transaction commits
    changed: list[tuple[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failure is None

    def unwrap(self) -> T:
        if self.failure is not None:
            raise RuntimeError(f"{self.failure.kind}: {self.failure.message}")
        return self.value  # type: ignore[return-value]


def ok(value: Any = None) -> Result:
    return Result(value=value)


def fail(kind: str, message: str) -> Result:
    return Result(failure=Failure(kind, message))


def unauthorized() -> Result:
    return fail(UNAUTHORIZED, "An authenticated actor is required.")


def not_found(what: str, ident: Any) -> Result:
    return fail(NOT_FOUND, f"{what} {ident} not found.")
