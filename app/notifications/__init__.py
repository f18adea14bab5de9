"""
Notifications app for outbound email.

This app provides:
- Notifier, called after commit by the order and settlement services
- Celery tasks that send the buyer, merchant and operator emails

Usage:
    from notifications.services import Notifier

    Notifier.notify_order_created(order.id)
"""
