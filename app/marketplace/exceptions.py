"""
Marketplace-specific exceptions.

Exception Hierarchy:
    MarketplaceValidationError (ValidationError) - bad data, never retried
    ├── OrderIntentValidationError - Payment metadata failed validation
    ├── FeeCalculationError - Amounts or rates out of range
    ├── UnknownMerchantError - Metadata names a merchant we do not have
    └── TierTransitionError - Plan change not allowed
        ├── UnknownPlanError - Plan id is not a known tier
        └── TierDowngradeNotAllowedError - Downgrade without the explicit path

    DuplicatePaymentError - Payment already produced an order (inherits ConflictError)

Every MarketplaceValidationError raised while handling a webhook is a data
quality incident: the event is marked rejected and is not retried.

Usage:
    from marketplace.exceptions import OrderIntentValidationError

    raise OrderIntentValidationError(
        "quantity must be a positive integer",
        details={"field": "cart[2].quantity", "value": "0"},
    )
"""

from __future__ import annotations

from core.exceptions import ConflictError, ValidationError


class MarketplaceValidationError(ValidationError):
    """Base for validation failures caused by the data itself."""

    default_error_code: str = "MARKETPLACE_VALIDATION_ERROR"


class OrderIntentValidationError(MarketplaceValidationError):
    """
    Raised when payment metadata cannot be decoded into an OrderIntent.

    Numeric fields are never coerced: a negative, non-finite or
    over-precise value is rejected outright.
    """

    default_error_code: str = "INVALID_ORDER_INTENT"


class FeeCalculationError(MarketplaceValidationError):
    """Raised for negative or non-integer amounts and rates outside [0, 1]."""

    default_error_code: str = "FEE_CALCULATION_ERROR"


class UnknownMerchantError(MarketplaceValidationError):
    """Raised when an event references a merchant that does not exist."""

    default_error_code: str = "UNKNOWN_MERCHANT"


class TierTransitionError(MarketplaceValidationError):
    """Base for rejected subscription tier changes."""

    default_error_code: str = "TIER_TRANSITION_ERROR"


class UnknownPlanError(TierTransitionError):
    default_error_code: str = "UNKNOWN_PLAN"


class TierDowngradeNotAllowedError(TierTransitionError):
    """
    Raised when a plan purchase would lower the effective tier.

    Downgrades only happen through TierReconciler.apply_downgrade, which is
    what subscription cancellation uses.
    """

    default_error_code: str = "TIER_DOWNGRADE_NOT_ALLOWED"


class DuplicatePaymentError(ConflictError):
    """
    Raised by the idempotency guard when a payment already produced an order.

    This is a no-op outcome, not a failure: webhook handlers translate it
    into success.

    Attributes:
        decision: The AlreadyHandled result, with the existing order id
    """

    default_error_code: str = "ALREADY_HANDLED"

    def __init__(self, message, error_code=None, details=None, decision=None):
        super().__init__(message, error_code=error_code, details=details)
        self.decision = decision


__all__ = [
    "MarketplaceValidationError",
    "OrderIntentValidationError",
    "FeeCalculationError",
    "UnknownMerchantError",
    "TierTransitionError",
    "UnknownPlanError",
    "TierDowngradeNotAllowedError",
    "DuplicatePaymentError",
]
