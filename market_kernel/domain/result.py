"""
Result -- explicit success/failure values returned across component seams.

Responsibility:
    Carries either a value or a typed ``MarketKernelError`` so ledgers, the
    order lifecycle, and the orchestrator can compose steps and roll back
    deterministically without raising across component boundaries.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Imported by every layer above.

Invariants enforced:
    - Exactly one of ``value``/``error`` is meaningful: a failed Result
      always has an error, a successful one never does.
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from market_kernel.exceptions import MarketKernelError

T = TypeVar("T")

OK = "OK"


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a domain operation.

    Guarantees:
        - ``is_success`` is True iff ``error`` is None.
        - ``code`` is ``"OK"`` on success, otherwise the error's code.
    """

    value: T | None = None
    error: MarketKernelError | None = None

    @classmethod
    def ok(cls, value: T | None = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: MarketKernelError) -> "Result[T]":
        if error is None:
            raise ValueError("A failed Result requires an error")
        return cls(error=error)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def code(self) -> str:
        return OK if self.error is None else self.error.code

    @property
    def message(self) -> str:
        return "" if self.error is None else str(self.error)

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable

    def unwrap(self) -> T:
        """Return the value, raising the carried error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def to_dict(self) -> dict[str, Any]:
        if self.error is None:
            return {"code": OK}
        return self.error.to_dict()
