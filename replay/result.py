"""Result type for explicit success/failure handling.

Replay verification never throws across the host boundary. Instead it
returns a Result that the playback controller inspects:

    result = verifier.verify(action, live)
    if result.is_err():
        controller_fails_with(result.error.description)

Usage:
------
    result = Ok(42)            # Success with value
    result = Err("Not found")  # Failure with error payload

    if result.is_ok():
        value = result.unwrap()
    else:
        error = result.error

    match result:
        case Ok(value):
            ...
        case Err(error):
            ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar, Union

T = TypeVar("T")  # Success value type
E = TypeVar("E")  # Error type
U = TypeVar("U")  # Transformed value type
F = TypeVar("F")  # Transformed error type


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Represents a successful operation result."""

    value: T

    def is_ok(self) -> bool:
        """Always returns True for Ok."""
        return True

    def is_err(self) -> bool:
        """Always returns False for Ok."""
        return False

    def unwrap(self) -> T:
        """Get the success value."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Get the value or a default (always returns value for Ok)."""
        return self.value

    @property
    def error(self) -> None:
        """Ok has no error, returns None."""
        return None

    def map(self, f: Callable[[T], U]) -> "Ok[U]":
        """Transform the success value.

        Example:
            Ok(5).map(lambda x: x * 2)  # Ok(10)
        """
        return Ok(f(self.value))

    def map_err(self, f: Callable[[E], F]) -> "Ok[T]":
        """Transform error (no-op for Ok, returns self)."""
        return self

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True)
class Err(Generic[E]):
    """Represents a failed operation result.

    Example:
        def verify(action) -> Result[None, SyncMismatch]:
            if diffs:
                return Err(SyncMismatch(diffs=tuple(diffs)))
            return Ok(None)
    """

    error: E

    def is_ok(self) -> bool:
        """Always returns False for Err."""
        return False

    def is_err(self) -> bool:
        """Always returns True for Err."""
        return True

    def unwrap(self) -> T:
        """Raises ValueError since Err has no success value.

        Don't call this without checking is_ok() first!
        """
        raise ValueError(f"Called unwrap on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Get the default value since this is an error."""
        return default

    @property
    def value(self) -> None:
        """Err has no value, returns None."""
        return None

    def map(self, f: Callable[[T], U]) -> "Err[E]":
        """Transform value (no-op for Err, returns self)."""
        return self

    def map_err(self, f: Callable[[E], F]) -> "Err[F]":
        """Transform the error.

        Example:
            Err("not found").map_err(lambda e: f"Error: {e}")  # Err("Error: not found")
        """
        return Err(f(self.error))

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Result is a union of Ok and Err
Result = Union[Ok[T], Err[E]]
