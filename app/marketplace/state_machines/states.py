"""
State enums for marketplace models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Order Status:
    pending → paid → fulfilled
    pending/paid → cancelled

Subscription Tier (ranked, not an FSM):
    free < standard < premium
"""

from django.db import models


class OrderStatus(models.TextChoices):
    """
    Status of an Order.

    Terminal states: FULFILLED, CANCELLED

    Orders created from a captured payment start at PAID. FULFILLED is only
    reachable once the merchant's transfer has succeeded.
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FULFILLED = "fulfilled", "Fulfilled"
    CANCELLED = "cancelled", "Cancelled"


class FulfillmentType(models.TextChoices):
    PICKUP = "pickup", "Pickup"
    DELIVERY = "delivery", "Delivery"


class SubscriptionTier(models.TextChoices):
    """
    Merchant subscription tiers, lowest first.

    Use TIER_RANK to compare tiers rather than the stored strings.
    """

    FREE = "free", "Free"
    STANDARD = "standard", "Standard"
    PREMIUM = "premium", "Premium"


TIER_RANK = {
    SubscriptionTier.FREE: 0,
    SubscriptionTier.STANDARD: 1,
    SubscriptionTier.PREMIUM: 2,
}

# Products a merchant may list on each tier; -1 means unlimited
TIER_PRODUCT_LIMITS = {
    SubscriptionTier.FREE: 3,
    SubscriptionTier.STANDARD: 10,
    SubscriptionTier.PREMIUM: -1,
}


__all__ = [
    "OrderStatus",
    "FulfillmentType",
    "SubscriptionTier",
    "TIER_RANK",
    "TIER_PRODUCT_LIMITS",
]
