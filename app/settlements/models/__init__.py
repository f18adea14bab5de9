"""
Settlement models.

- TransferRecord: Settlement of one order's merchant payout
- WebhookEvent: Durable queue of inbound Stripe events
"""

from settlements.models.transfer_record import TransferRecord
from settlements.models.webhook_event import WebhookEvent

__all__ = [
    "TransferRecord",
    "WebhookEvent",
]
