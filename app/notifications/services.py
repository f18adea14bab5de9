"""
Notification service layer.

Notifier is the one-way collaborator the payment pipeline calls once its
state is committed. Every method only queues a Celery email task; a broker
failure is logged and swallowed so it can never roll back or fail the order
or settlement that triggered it.

Services:
    Notifier: Buyer confirmations, merchant alerts, operator alerts

Usage:
    from functools import partial
    from django.db import transaction
    from notifications.services import Notifier

    transaction.on_commit(partial(Notifier.notify_order_created, order.id))
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.services import BaseService

if TYPE_CHECKING:
    from settlements.models import TransferRecord


class Notifier(BaseService):
    """Fire-and-forget notifications for orders and settlements."""

    @classmethod
    def notify_order_created(cls, order_id) -> None:
        """Queue the order confirmation to the buyer."""
        from notifications.tasks import send_order_confirmation

        cls._queue(send_order_confirmation, order_id, "order confirmation")

    @classmethod
    def notify_merchant(cls, order_id) -> None:
        """Queue the new-order alert to the merchant."""
        from notifications.tasks import send_merchant_order_alert

        cls._queue(send_merchant_order_alert, order_id, "merchant alert")

    @classmethod
    def notify_operators_settlement_failed(cls, record: TransferRecord) -> None:
        """
        Alert operators that a settlement stopped retrying.

        Logged at CRITICAL so it reaches log-based alerting even when mail
        delivery is down.
        """
        from notifications.tasks import send_operator_alert

        cls.get_logger().critical(
            f"Settlement for order {record.order_id} failed permanently",
            extra={
                "transfer_record_id": str(record.id),
                "order_id": str(record.order_id),
                "merchant_id": str(record.merchant_id),
                "amount_minor_units": record.amount_minor_units,
                "attempt_count": record.attempt_count,
                "error": record.last_error,
            },
        )

        subject = f"Settlement failed for order {record.order_id}"
        message = (
            f"The transfer of {record.amount_minor_units / 100:.2f} {record.currency.upper()} "
            f"to merchant {record.merchant_id} failed after {record.attempt_count} attempts.\n\n"
            f"Last error: {record.last_error}\n\n"
            "The order stays paid. Fix the cause, then requeue the transfer record "
            "from the admin."
        )
        try:
            send_operator_alert.delay(subject, message)
        except Exception:
            cls.get_logger().exception(
                "Failed to queue operator alert",
                extra={"transfer_record_id": str(record.id)},
            )

    @classmethod
    def _queue(cls, task, order_id, description: str) -> None:
        try:
            task.delay(str(order_id))
        except Exception:
            cls.get_logger().exception(
                f"Failed to queue {description}",
                extra={"order_id": str(order_id)},
            )
