"""
FILE: src/core/result.py
Explicit result values for the access pipeline and backend calls.
Callers branch on isinstance(result, Err) instead of inspecting messages.
"""

from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar, Union

from src.core.errors import ApiError, ErrorKind

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    def map(self, fn: Callable[[T], U]) -> "Ok[U]":
        return Ok(fn(self.value))

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: Optional[str] = None

    def map(self, fn: Callable) -> "Err":
        return self

    def unwrap(self):
        """Raise the failure as an ApiError (request handlers only)."""
        raise ApiError(self.kind, self.message)


Result = Union[Ok[T], Err]
