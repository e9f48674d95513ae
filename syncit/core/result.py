"""Typed outcome of a group mutation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, Optional, TypeVar

if TYPE_CHECKING:
    from syncit.errors import AppError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """The value of an operation, or the error that stopped it.

    A failed result may still carry a value describing partial progress.

    ``optimistic`` is set when the backend write failed but the change was
    applied to the local cache anyway; the caller decides whether to tell
    the user.
    """

    value: Optional[T] = None
    error: Optional[AppError] = None
    optimistic: bool = False

    @classmethod
    def success(cls, value: Optional[T] = None) -> Result[T]:
        """Build a successful result."""
        return cls(value=value)

    @classmethod
    def failure(cls, error: AppError, optimistic: bool = False) -> Result[T]:
        """Build a failed result."""
        return cls(error=error, optimistic=optimistic)

    @property
    def ok(self) -> bool:
        """Whether the operation succeeded at the backend."""
        return self.error is None

    def unwrap(self) -> Optional[T]:
        """Return the value, or raise the error."""
        if self.error is not None:
            raise self.error
        return self.value

    def as_optimistic(self) -> Result[T]:
        """Return a copy marked as applied locally."""
        return Result(value=self.value, error=self.error, optimistic=True)
