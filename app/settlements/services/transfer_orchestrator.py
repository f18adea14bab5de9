"""
Transfer orchestration: settling a paid order with its merchant.

Every attempt re-checks its preconditions against Stripe:

    1. Terminal records (succeeded, failed_permanent) are returned unchanged
    2. The PaymentIntent must be captured
    3. The merchant's Connect account must be able to receive transfers;
       if not, the record waits (failed_retryable) without consuming an
       attempt and the transfer is never called
    4. The merchant payout is transferred with an idempotency key derived
       from the order id, so a retry after a timeout cannot pay twice

Transient failures consume an attempt and schedule a new settle_order task
after an exponential backoff. Exhausting SETTLEMENT_MAX_ATTEMPTS, or a
rejection Stripe says is permanent, ends in failed_permanent and an operator
alert. Orders are never unwound here: a failed settlement leaves the order
paid and unsettled.

One settlement runs per order at a time, under a Redis lock.

Usage:
    record = TransferOrchestrator.settle(order_id)
"""

from __future__ import annotations

from datetime import timedelta
from functools import partial
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.services import BaseService

from notifications.services import Notifier
from settlements.adapters import IdempotencyKeyGenerator, backoff_delay
from settlements.exceptions import SettlementNotFoundError, StripeError
from settlements.gateway import StripePayoutGateway
from settlements.locks import DistributedLock, check_version
from settlements.models import TransferRecord

if TYPE_CHECKING:
    from marketplace.models import Order

# Settling makes up to three Stripe calls, each bounded by the API timeout
SETTLEMENT_LOCK_TTL = 120

# Fields written by a settlement attempt; others (confirmed_at) belong to
# the webhook handlers
ATTEMPT_FIELDS = [
    "state",
    "attempt_count",
    "last_error",
    "missing_requirements",
    "next_attempt_at",
    "stripe_transfer_id",
    "succeeded_at",
    "failed_permanently_at",
    "version",
    "updated_at",
]


class TransferOrchestrator(BaseService):
    """
    Moves each paid order's merchant payout to the merchant's account.

    The payout gateway can be injected for testing.
    """

    _gateway = None

    @classmethod
    def get_gateway(cls):
        return cls._gateway or StripePayoutGateway

    @classmethod
    def set_gateway(cls, gateway) -> None:
        cls._gateway = gateway

    # =========================================================================
    # Entry Points
    # =========================================================================

    @classmethod
    def create_for_order(cls, order: Order) -> TransferRecord:
        """
        Create the pending settlement for a newly paid order.

        Call inside the transaction that created the order. The first
        settlement attempt is queued once that transaction commits.
        """
        record = TransferRecord.objects.create(
            order=order,
            merchant_id=order.merchant_id,
            amount_minor_units=order.merchant_payout_minor_units,
            currency=order.currency,
            idempotency_key=IdempotencyKeyGenerator.generate("transfer", order.id),
        )
        transaction.on_commit(partial(cls.schedule, order.id))
        return record

    @classmethod
    def settle(cls, order_id) -> TransferRecord:
        """
        Run one settlement attempt for an order.

        Raises:
            LockAcquisitionError: another worker is settling this order
            SettlementNotFoundError: the order has no TransferRecord
        """
        lock = DistributedLock(
            f"settlement:order:{order_id}",
            ttl=SETTLEMENT_LOCK_TTL,
            blocking=False,
        )
        with lock:
            return cls._settle_with_lock(order_id)

    @classmethod
    def requeue(cls, record_id, expected_version: int) -> TransferRecord:
        """
        Give a permanently failed settlement a fresh attempt budget.

        Raises:
            StaleRecordError: the record changed since the operator saw it
            TransitionNotAllowed: the record is not failed_permanent
        """
        with cls.atomic():
            record = check_version(TransferRecord, record_id, expected_version)
            record.requeue()
            record.save(update_fields=ATTEMPT_FIELDS)
            transaction.on_commit(partial(cls.schedule, record.order_id))

        cls.get_logger().info(
            f"Requeued settlement for order {record.order_id}",
            extra={"transfer_record_id": str(record.id), "order_id": str(record.order_id)},
        )
        return record

    @classmethod
    def schedule(cls, order_id, countdown: float | None = None) -> None:
        """Queue a settle_order task; the due-transfer sweep covers failures."""
        from settlements.tasks import settle_order

        try:
            settle_order.apply_async(args=[str(order_id)], countdown=countdown)
        except Exception:
            cls.get_logger().exception(
                f"Failed to queue settlement for order {order_id}",
                extra={"order_id": str(order_id)},
            )

    # =========================================================================
    # Settlement Attempt
    # =========================================================================

    @classmethod
    def _settle_with_lock(cls, order_id) -> TransferRecord:
        record = (
            TransferRecord.objects.select_related("order", "merchant")
            .filter(order_id=order_id)
            .first()
        )
        if record is None:
            raise SettlementNotFoundError(
                f"No transfer record for order {order_id}",
                details={"order_id": str(order_id)},
            )

        log_context = {
            "transfer_record_id": str(record.id),
            "order_id": str(order_id),
            "merchant_id": str(record.merchant_id),
        }

        if record.is_terminal:
            cls.get_logger().info(
                f"Settlement already {record.state}; nothing to do",
                extra={**log_context, "state": record.state},
            )
            return record

        gateway = cls.get_gateway()

        # Step 1: the payment must really be captured
        try:
            captured = gateway.is_payment_captured(record.order.external_object_id)
        except StripeError as e:
            cls._consume_attempt(record)
            return cls._handle_failure(record, e.message, e.is_retryable, log_context)

        if not captured:
            cls._consume_attempt(record)
            return cls._handle_failure(
                record,
                f"Payment {record.order.external_object_id} is not captured",
                True,
                log_context,
            )

        # Step 2: the receiving account must be ready, checked live
        try:
            status = gateway.check_payout_account_ready(record.merchant_id)
        except StripeError as e:
            cls._consume_attempt(record)
            return cls._handle_failure(record, e.message, e.is_retryable, log_context)

        if not status.ready:
            return cls._wait_for_account(record, status.missing_requirements, log_context)

        if record.amount_minor_units == 0:
            record.mark_succeeded(None)
            record.save(update_fields=ATTEMPT_FIELDS)
            cls.get_logger().info("Zero payout settled without a transfer", extra=log_context)
            return record

        # Step 3: the attempt is recorded before the call so a crash mid-call
        # still counts against the budget
        cls._consume_attempt(record)
        record.merchant.refresh_from_db(fields=["payout_account_id"])

        try:
            result = gateway.transfer_funds(
                record.merchant.payout_account_id,
                record.amount_minor_units,
                record.idempotency_key,
                currency=record.currency,
                metadata={
                    "order_id": str(record.order_id),
                    "order_number": record.order.order_number,
                    "transfer_record_id": str(record.id),
                },
            )
        except StripeError as e:
            return cls._handle_failure(record, e.message, e.is_retryable, log_context)

        record.mark_succeeded(result.id)
        record.save(update_fields=ATTEMPT_FIELDS)

        cls.get_logger().info(
            f"Settled order {record.order.order_number}",
            extra={
                **log_context,
                "stripe_transfer_id": result.id,
                "amount_minor_units": record.amount_minor_units,
                "attempt_count": record.attempt_count,
            },
        )
        return record

    @classmethod
    def _consume_attempt(cls, record: TransferRecord) -> None:
        record.attempt_count += 1
        record.save(update_fields=["attempt_count", "version", "updated_at"])

    @classmethod
    def _wait_for_account(
        cls, record: TransferRecord, missing_requirements: list[str], log_context: dict
    ) -> TransferRecord:
        recheck_at = timezone.now() + timedelta(minutes=settings.SETTLEMENT_ACCOUNT_RECHECK_MINUTES)
        record.mark_retryable(
            "Payout account cannot receive transfers yet",
            next_attempt_at=recheck_at,
            missing_requirements=missing_requirements,
        )
        record.save(update_fields=ATTEMPT_FIELDS)

        cls.get_logger().warning(
            "Payout account not ready; transfer deferred",
            extra={
                **log_context,
                "missing_requirements": list(missing_requirements),
                "next_attempt_at": recheck_at.isoformat(),
            },
        )
        return record

    @classmethod
    def _handle_failure(
        cls,
        record: TransferRecord,
        reason: str,
        retryable: bool,
        log_context: dict,
    ) -> TransferRecord:
        max_attempts = settings.SETTLEMENT_MAX_ATTEMPTS

        if retryable and record.attempt_count < max_attempts:
            delay = backoff_delay(
                record.attempt_count - 1,
                max_delay=settings.SETTLEMENT_BACKOFF_MAX_SECONDS,
            )
            record.mark_retryable(reason, next_attempt_at=timezone.now() + timedelta(seconds=delay))
            record.save(update_fields=ATTEMPT_FIELDS)
            cls.schedule(record.order_id, countdown=delay)

            cls.get_logger().warning(
                f"Settlement attempt {record.attempt_count}/{max_attempts} failed, retrying in {delay:.1f}s",
                extra={**log_context, "error": reason, "attempt_count": record.attempt_count},
            )
            return record

        if retryable:
            reason = f"Gave up after {record.attempt_count} attempts: {reason}"
        record.mark_failed_permanently(reason)
        record.save(update_fields=ATTEMPT_FIELDS)

        cls.get_logger().error(
            "Settlement failed permanently",
            extra={**log_context, "error": reason, "attempt_count": record.attempt_count},
        )
        Notifier.notify_operators_settlement_failed(record)
        return record
