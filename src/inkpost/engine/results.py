"""
Result values returned by every engine operation.

Engine operations never raise for expected failures; they return a
`Result` that is either a success carrying a value or a failure carrying
an `EngineError` with a distinguishable `ErrorKind`:

    >>> result = controller.toggle(ToggleKind.LIKE, "a1", user.id, False)
    >>> if result.ok:
    ...     liked, count = result.value.state, result.value.count
    ... elif result.kind is ErrorKind.UNAUTHENTICATED:
    ...     prompt_sign_in()
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

from ..exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
)

T = TypeVar("T")


class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    ALREADY_TOGGLED = "already_toggled"
    NOT_AUTHORIZED = "not_authorized"
    GATEWAY_ERROR = "gateway_error"
    NOT_FOUND = "not_found"
    COMMENT_POST_FAILED = "comment_post_failed"
    INVALID = "invalid"


@dataclass(frozen=True)
class EngineError:
    kind: ErrorKind
    message: str = ""

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}" if self.message else self.kind.value


class EngineFailure(RuntimeError):
    """Raised only by `Result.unwrap()` on a failed result."""

    def __init__(self, error: EngineError) -> None:
        super().__init__(str(error))
        self.error = error


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[EngineError] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str = "") -> "Result[T]":
        return cls(error=EngineError(kind, message))

    @classmethod
    def from_exception(
        cls,
        exc: APIError,
        default: ErrorKind = ErrorKind.GATEWAY_ERROR,
    ) -> "Result[T]":
        """Classify a gateway exception; anything unrecognised becomes `default`."""
        if isinstance(exc, NotFoundError):
            kind = ErrorKind.NOT_FOUND
        elif isinstance(exc, AuthorizationError):
            kind = ErrorKind.NOT_AUTHORIZED
        elif isinstance(exc, AuthenticationError):
            kind = ErrorKind.UNAUTHENTICATED
        else:
            kind = default
        return cls.failure(kind, str(exc))

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None

    def unwrap(self) -> Optional[T]:
        if self.error is not None:
            raise EngineFailure(self.error)
        return self.value

    def __repr__(self) -> str:
        if self.error is not None:
            return f"Result(error={self.error})"
        return f"Result(value={self.value!r})"
