"""
Marketplace services.

- IdempotencyGuard: One order per external payment
- OrderNumberAllocator: PREFIX-YYMMDD-NNN order numbers
- BuyerRegistry: Buyer upsert without silent overwrites
- OrderMaterializer: Paid order + line items from a captured payment
- TierReconciler: Subscription tier transitions
"""

from marketplace.services.buyers import BuyerRegistry
from marketplace.services.idempotency import AlreadyHandled, IdempotencyGuard, Proceed
from marketplace.services.order_materializer import OrderMaterializer
from marketplace.services.order_numbers import OrderNumberAllocator
from marketplace.services.tier_reconciler import TierReconciler

__all__ = [
    "AlreadyHandled",
    "BuyerRegistry",
    "IdempotencyGuard",
    "OrderMaterializer",
    "OrderNumberAllocator",
    "Proceed",
    "TierReconciler",
]
