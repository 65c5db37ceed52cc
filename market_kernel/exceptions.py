"""
Typed exception hierarchy for the marketplace kernel.

Every failure the fulfillment core can report has a class here with a
machine-readable ``code`` and structured fields.  Callers branch on the
type or the code, never on message text.

Components do not let these escape across their boundaries.  A ledger or
the orchestrator wraps the error in a ``Result`` (see
``market_kernel.domain.result``) and returns it; the exception object is
the failure payload.

    MarketKernelError (base)
    |
    +-- NotFoundError                  NOT_FOUND
    +-- InsufficientStockError         INSUFFICIENT_STOCK
    +-- InsufficientCashbackError      INSUFFICIENT_CASHBACK
    +-- ExcessiveDiscountError         EXCESSIVE_DISCOUNT
    +-- InvalidStateTransitionError    INVALID_STATE_TRANSITION
    +-- ValidationError                VALIDATION_ERROR
    +-- ConflictError                  CONFLICT (retryable)
    +-- UnauthorizedError              UNAUTHORIZED
    +-- ForbiddenError                 FORBIDDEN
    +-- InternalError                  INTERNAL_ERROR
"""

from decimal import Decimal
from typing import Any


class MarketKernelError(Exception):
    """
    Base exception for all marketplace kernel errors.

    Subclasses must define a ``code`` class attribute.  ``retryable`` tells
    the caller whether repeating the same request once may succeed.
    """

    code: str = "MARKET_KERNEL_ERROR"
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Structured view used for API responses and log payloads."""
        data: dict[str, Any] = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if not key.startswith("_"):
                data[key] = value
        return data


class NotFoundError(MarketKernelError):
    """An entity does not exist or has been soft-deleted."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class InsufficientStockError(MarketKernelError):
    """A stock adjustment would drive a product's quantity below zero."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: Any, requested: int, available: int):
        self.product_id = str(product_id)
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class InsufficientCashbackError(MarketKernelError):
    """A spend exceeds the customer's available cashback balance."""

    code: str = "INSUFFICIENT_CASHBACK"

    def __init__(self, customer_id: Any, requested: Decimal, available: Decimal):
        self.customer_id = str(customer_id)
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient cashback for customer {customer_id}: "
            f"requested {requested}, available {available}"
        )


class ExcessiveDiscountError(MarketKernelError):
    """A discount exceeds the cap for the applying actor's role."""

    code: str = "EXCESSIVE_DISCOUNT"

    def __init__(
        self,
        requested_amount: Decimal,
        max_allowed_amount: Decimal,
        actor_role: str,
    ):
        self.requested_amount = requested_amount
        self.max_allowed_amount = max_allowed_amount
        self.actor_role = actor_role
        super().__init__(
            f"Discount {requested_amount} exceeds the maximum of "
            f"{max_allowed_amount} allowed for role {actor_role}"
        )


class InvalidStateTransitionError(MarketKernelError):
    """An order status change is not in the transition table."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, current_status: str, requested_status: str):
        self.current_status = current_status
        self.requested_status = requested_status
        super().__init__(
            f"Cannot transition order from {current_status} to {requested_status}"
        )


class ValidationError(MarketKernelError):
    """
    Input failed a domain rule.

    ``field_errors`` maps each offending field to its reason so callers can
    report field-level detail.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field_errors: dict[str, str] | None = None):
        self.field_errors = dict(field_errors or {})
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, reason: str) -> "ValidationError":
        return cls(f"{field}: {reason}", {field: reason})


class ConflictError(MarketKernelError):
    """A concurrent update was detected.  Safe to retry once."""

    code: str = "CONFLICT"
    retryable: bool = True

    def __init__(self, entity_type: str, entity_id: Any, detail: str = ""):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.detail = detail
        message = f"Concurrent update conflict on {entity_type} {entity_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class UnauthorizedError(MarketKernelError):
    """No acting identity was supplied."""

    code: str = "UNAUTHORIZED"

    def __init__(self, message: str = "An authenticated actor is required"):
        super().__init__(message)


class ForbiddenError(MarketKernelError):
    """The acting identity may not perform the operation."""

    code: str = "FORBIDDEN"

    def __init__(self, actor_role: str, action: str):
        self.actor_role = actor_role
        self.action = action
        super().__init__(f"Role {actor_role} is not allowed to {action}")


class InternalError(MarketKernelError):
    """Persistence unavailable or an unexpected fault."""

    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, cause: str | None = None):
        self.cause = cause
        super().__init__(message)
