"""Value-level success/failure wrapper for application services."""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    is_success: bool
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(True, value, None)

    @classmethod
    def failure(cls, error: str) -> "Result[T]":
        return cls(False, None, error)
