"""
Webhook handling for payment events from Stripe.

Webhooks are verified, stored idempotently, and processed asynchronously
via Celery tasks.

Usage:
    # In urls.py
    from settlements.webhooks.views import payments_webhook

    urlpatterns = [
        path("payments/", payments_webhook, name="payments"),
    ]
"""

from settlements.webhooks.handlers import dispatch_webhook, register_handler
from settlements.webhooks.views import payments_webhook

__all__ = [
    "dispatch_webhook",
    "payments_webhook",
    "register_handler",
]
