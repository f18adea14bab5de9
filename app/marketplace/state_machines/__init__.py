"""
State definitions for marketplace models.
"""

from marketplace.state_machines.states import (
    TIER_PRODUCT_LIMITS,
    TIER_RANK,
    FulfillmentType,
    OrderStatus,
    SubscriptionTier,
)

__all__ = [
    "OrderStatus",
    "FulfillmentType",
    "SubscriptionTier",
    "TIER_RANK",
    "TIER_PRODUCT_LIMITS",
]
