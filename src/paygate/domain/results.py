"""
Result - Explicit success/failure values for the collaborator-facing facade

Adapters raise taxonomy errors (paygate.domain.errors); the orchestrator
catches them at its boundary and hands callers a Result instead, so the
fail-closed cases (unverified webhook, unavailable rate, unconfigured
gateway) are visible in the return type rather than by convention.

Files that USE this module:
- paygate.application.orchestrator (returns Result from every operation)
- tests.test_orchestrator

Files that this module USES:
- paygate.domain.errors (PaymentError)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from paygate.domain.errors import PaymentError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or a PaymentError, never both."""
    value: Optional[T] = None
    error: Optional[PaymentError] = None

    @classmethod
    def ok(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def fail(cls, error: PaymentError) -> Result[T]:
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def unwrap_or(self, default: T) -> T:
        return self.value if self.error is None else default  # type: ignore[return-value]

    def map(self, fn: Callable[[T], U]) -> Result[U]:
        if self.error is not None:
            return Result(error=self.error)
        return Result(value=fn(self.value))  # type: ignore[arg-type]
