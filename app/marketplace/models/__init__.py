"""
Marketplace domain models.

- MerchantAccount: Wholesaler with subscription tier and payout account
- Buyer: Customer record upserted from checkout details
- Order: Purchase created from a captured payment
- OrderLineItem: Cart line of an order
- OrderNumberSequence: Per-merchant daily order counter
"""

from marketplace.models.buyer import Buyer
from marketplace.models.merchant import MerchantAccount
from marketplace.models.order import Order, OrderLineItem, OrderNumberSequence

__all__ = [
    "Buyer",
    "MerchantAccount",
    "Order",
    "OrderLineItem",
    "OrderNumberSequence",
]
