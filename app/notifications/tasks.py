"""
Celery tasks for notification delivery.

Tasks:
    send_order_confirmation: Email the buyer their order summary
    send_merchant_order_alert: Email the merchant about a new order
    send_operator_alert: Email the ADMINS list via mail_admins

Message bodies are plain text. Tasks are retried on any delivery error and
skip orders whose recipient has no email address.

Usage:
    from notifications.tasks import send_order_confirmation

    send_order_confirmation.delay(str(order.id))
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import mail_admins, send_mail

logger = logging.getLogger(__name__)


def _get_order(order_id: str):
    from marketplace.models import Order

    order = (
        Order.objects.select_related("merchant")
        .prefetch_related("line_items")
        .filter(id=order_id)
        .first()
    )
    if order is None:
        logger.warning(f"Order {order_id} not found for notification")
    return order


def _money(minor_units: int, currency: str) -> str:
    return f"{minor_units / 100:.2f} {currency.upper()}"


def _order_lines(order) -> str:
    return "\n".join(
        f"  {item.quantity} x {item.product_name or item.product_id} "
        f"@ {_money(item.unit_price_minor_units, order.currency)}"
        for item in order.line_items.all()
    )


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_order_confirmation(self, order_id: str) -> bool:
    """
    Send the order confirmation to the buyer.

    Returns:
        True if sent, False if skipped
    """
    order = _get_order(order_id)
    if order is None or not order.buyer_email:
        logger.info(f"Order confirmation skipped for order {order_id}: no recipient")
        return False

    merchant_name = order.merchant.business_name or "your supplier"
    body = (
        f"Hi {order.buyer_name or 'there'},\n\n"
        f"Thanks for your order {order.order_number} with {merchant_name}.\n\n"
        f"{_order_lines(order)}\n\n"
        f"Delivery: {_money(order.delivery_fee_minor_units, order.currency)}\n"
        f"Service fee: {_money(order.buyer_service_fee_minor_units, order.currency)}\n"
        f"Total paid: {_money(order.total_charged_minor_units, order.currency)}\n"
    )
    send_mail(
        subject=f"Order {order.order_number} confirmed",
        message=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[order.buyer_email],
    )
    logger.info(
        "Order confirmation sent",
        extra={"order_id": str(order.id), "order_number": order.order_number},
    )
    return True


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_merchant_order_alert(self, order_id: str) -> bool:
    """
    Tell the merchant a new paid order is waiting.

    Returns:
        True if sent, False if skipped
    """
    order = _get_order(order_id)
    if order is None or not order.merchant.email:
        logger.info(f"Merchant alert skipped for order {order_id}: no recipient")
        return False

    body = (
        f"New order {order.order_number} from {order.buyer_name or order.buyer_phone}.\n\n"
        f"{_order_lines(order)}\n\n"
        f"Fulfillment: {order.fulfillment_type}"
        f"{' via ' + order.delivery_carrier if order.delivery_carrier else ''}\n"
        f"Your payout: {_money(order.merchant_payout_minor_units, order.currency)}\n"
    )
    send_mail(
        subject=f"New order {order.order_number}",
        message=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[order.merchant.email],
    )
    logger.info(
        "Merchant order alert sent",
        extra={"order_id": str(order.id), "merchant_id": str(order.merchant_id)},
    )
    return True


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_operator_alert(self, subject: str, message: str) -> bool:
    """Email the operators listed in ADMINS."""
    mail_admins(subject, message)
    logger.info("Operator alert sent", extra={"subject": subject})
    return True
