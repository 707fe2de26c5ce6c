from __future__ import annotations

import functools
from typing import Callable, Generic, TypeVar

from gradebook.core.errors import GradebookError

T = TypeVar("T")


class Result(Generic[T]):
    """
    Outcome of a gradebook operation: either a value or a typed failure.

    A computed grade of ``None`` (nothing graded yet) is a successful result;
    only broken input or broken structure produces a failure.

    Attributes:
        ok (bool): True when the operation succeeded.
        value (T | None): Payload of a successful operation.
        error (GradebookError | None): Typed failure of an unsuccessful one.
    """

    def __init__(self, ok: bool, value: T | None = None, error: GradebookError | None = None):
        self._ok = ok
        self._value = value
        self._error = error

    # === properties ===

    @property
    def ok(self) -> bool:
        return self._ok

    @property
    def value(self) -> T | None:
        return self._value

    @property
    def error(self) -> GradebookError | None:
        return self._error

    # === public classmethods ===

    @classmethod
    def succeed(cls, value: T | None = None) -> Result[T]:
        return cls(ok=True, value=value)

    @classmethod
    def fail(cls, error: GradebookError) -> Result[T]:
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        """Return the value, or raise the stored error."""
        if not self._ok:
            raise self._error  # type: ignore[misc]
        return self._value  # type: ignore[return-value]

    # === dunder methods ===

    def __repr__(self) -> str:
        if self._ok:
            return f"Result.succeed({self._value!r})"
        return f"Result.fail({self._error!r})"


def wrap_result(func: Callable[..., T]) -> Callable[..., Result[T]]:
    """Run `func` and report its value, or the GradebookError it raised, as a Result."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> Result[T]:
        try:
            return Result.succeed(func(*args, **kwargs))
        except GradebookError as error:
            return Result.fail(error)

    return wrapper
