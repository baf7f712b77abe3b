"""Result values returned by mutating core operations."""

from dataclasses import dataclass
from typing import Generic, TypeVar

from .errors import GrocerError

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Success or failure of a core operation.

    Expected failures (insufficient stock, wrong status, unknown id) come back
    as a falsy Outcome carrying the error instead of being raised, so callers
    can branch on them. Use unwrap() to get exception flow instead.
    """

    value: T | None = None
    error: GrocerError | None = None

    @classmethod
    def success(cls, value: T | None = None) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: GrocerError) -> "Outcome[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok

    def unwrap(self) -> T | None:
        """
        Return the value of a successful outcome.

        Raises:
            GrocerError: The carried error if the outcome failed.
        """
        if self.error is not None:
            raise self.error
        return self.value
