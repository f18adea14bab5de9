"""
Settlement adapters for external services.

All Stripe API calls go through these adapters to ensure consistent error
handling, timeouts, idempotency, and observability.

Usage:
    from settlements.adapters import StripeAdapter

    account = StripeAdapter.retrieve_account("acct_xxx")
"""

from settlements.adapters.stripe_adapter import (
    AccountResult,
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    StripeAdapter,
    TransferResult,
    backoff_delay,
    is_retryable_stripe_error,
)

__all__ = [
    "AccountResult",
    "IdempotencyKeyGenerator",
    "PaymentIntentResult",
    "StripeAdapter",
    "TransferResult",
    "backoff_delay",
    "is_retryable_stripe_error",
]
