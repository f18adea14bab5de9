"""
Celery tasks for webhook processing and settlement.

This module provides async tasks for:
- Processing Stripe webhook events
- Retrying failed and never-queued webhook events
- Periodic cleanup of old/stuck events
- Settling an order with its merchant
- Requeueing settlements whose next attempt is due

Usage:
    from settlements.tasks import process_webhook_event, settle_order

    process_webhook_event.delay(str(webhook_event.id))
    settle_order.apply_async(args=[str(order.id)], countdown=4)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.db import OperationalError, transaction
from django.db.models import Q
from django.utils import timezone

from settlements.exceptions import LockAcquisitionError, SettlementNotFoundError
from settlements.models import TransferRecord, WebhookEvent
from settlements.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

STUCK_PROCESSING_THRESHOLD_MINUTES = 30

# A pending row this old was never picked up by a worker
UNQUEUED_THRESHOLD_MINUTES = 5

# Maximum rows handled per sweep run
BATCH_SIZE = 100


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": settings.WEBHOOK_MAX_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a Stripe webhook event asynchronously.

    This task:
    1. Loads the WebhookEvent by ID
    2. Skips events already processed or rejected
    3. Marks as processing
    4. Dispatches to the registered handler in one transaction
    5. Marks as processed, rejected (bad data) or failed

    Raises:
        Exception: Re-raised to trigger Celery retry mechanism
    """
    # Import here to avoid circular imports
    from settlements.webhooks.handlers import dispatch_webhook, is_data_quality_failure

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    logger.info(
        "Processing webhook event",
        extra={"webhook_event_id": str(webhook_event_id)},
    )

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.status in (WebhookEventStatus.PROCESSED, WebhookEventStatus.REJECTED):
        logger.info(
            f"WebhookEvent already {webhook_event.status}, skipping",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
            },
        )
        return {
            "status": f"already_{webhook_event.status}",
            "webhook_event_id": str(webhook_event_id),
        }

    webhook_event.mark_processing()
    webhook_event.save()

    logger.info(
        f"Dispatching webhook: {webhook_event.event_type}",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
            "event_type": webhook_event.event_type,
            "retry_count": webhook_event.retry_count,
        },
    )

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {str(e)}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()

        logger.exception(
            "Webhook processing failed with exception",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
                "error": error_msg,
            },
        )

        # Re-raise to trigger Celery retry
        raise

    if result.success:
        webhook_event.mark_processed()
        webhook_event.save()
        logger.info(
            "Webhook processed successfully",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
            },
        )
        return {
            "status": "processed",
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
        }

    error_msg = result.error or "Handler returned failure"

    if is_data_quality_failure(result):
        webhook_event.mark_rejected(error_msg)
        webhook_event.save()
        logger.error(
            f"Webhook rejected: {error_msg}",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
                "event_type": webhook_event.event_type,
                "error_code": result.error_code,
                "errors": result.errors,
                "data_quality_incident": True,
            },
        )
        return {
            "status": "rejected",
            "webhook_event_id": str(webhook_event_id),
            "error": error_msg,
            "error_code": result.error_code,
        }

    webhook_event.mark_failed(error_msg)
    webhook_event.save()
    logger.warning(
        f"Webhook handler failed: {error_msg}",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
            "error": error_msg,
            "error_code": result.error_code,
        },
    )
    return {
        "status": "handler_failed",
        "webhook_event_id": str(webhook_event_id),
        "error": error_msg,
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Requeues failed webhooks that have not exceeded WEBHOOK_MAX_RETRIES, and
    pending webhooks whose original queueing never reached a worker.

    Returns:
        Dict with count of webhooks queued for retry
    """
    unqueued_before = timezone.now() - timedelta(minutes=UNQUEUED_THRESHOLD_MINUTES)
    retryable = WebhookEvent.objects.filter(
        Q(status=WebhookEventStatus.FAILED, retry_count__lt=settings.WEBHOOK_MAX_RETRIES)
        | Q(status=WebhookEventStatus.PENDING, created_at__lt=unqueued_before)
    ).order_by("created_at")[:BATCH_SIZE]

    queued_count = 0
    for webhook in retryable:
        try:
            process_webhook_event.delay(str(webhook.id))
            queued_count += 1
            logger.info(
                "Queued webhook for retry",
                extra={
                    "webhook_event_id": str(webhook.id),
                    "stripe_event_id": webhook.stripe_event_id,
                    "status": webhook.status,
                    "retry_count": webhook.retry_count,
                },
            )
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"webhook_event_id": str(webhook.id)},
            )

    logger.info(
        f"Queued {queued_count} webhooks for retry",
        extra={"queued_count": queued_count},
    )

    return {"queued_count": queued_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Periodic task to reset stuck webhooks.

    Webhooks left in PROCESSING by a crashed worker are reset to FAILED so
    retry_failed_webhooks picks them up.

    Returns:
        Dict with count of webhooks reset
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)

    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        stuck_since = webhook.updated_at
        webhook.mark_failed("Processing timed out - reset for retry")
        webhook.save()
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "stripe_event_id": webhook.stripe_event_id,
                "stuck_since": stuck_since.isoformat(),
            },
        )

    if reset_count > 0:
        logger.info(
            f"Reset {reset_count} stuck webhooks",
            extra={"reset_count": reset_count},
        )

    return {"reset_count": reset_count}


@shared_task
def cleanup_old_webhooks(days: int | None = None) -> dict:
    """
    Periodic task to clean up old processed webhook events.

    Only processed events are deleted; failed and rejected events are kept
    for investigation.

    Args:
        days: Delete processed webhooks older than this many days
            (default WEBHOOK_RETENTION_DAYS)

    Returns:
        Dict with count of webhooks deleted
    """
    days = days if days is not None else settings.WEBHOOK_RETENTION_DAYS
    cutoff = timezone.now() - timedelta(days=days)

    deleted_count, _ = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSED,
        processed_at__lt=cutoff,
    ).delete()

    if deleted_count > 0:
        logger.info(
            f"Deleted {deleted_count} old webhook events",
            extra={
                "deleted_count": deleted_count,
                "cutoff_date": cutoff.isoformat(),
            },
        )

    return {"deleted_count": deleted_count}


# =============================================================================
# Settlement Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
    acks_late=True,
)
def settle_order(self, order_id: str) -> dict:
    """
    Run one settlement attempt for an order.

    Stripe failures are handled inside TransferOrchestrator, which
    schedules the next attempt itself; only database unavailability is
    retried by Celery.

    Returns:
        Dict with:
        - status: One of "settled", "retrying", "failed", "not_found",
                  "lock_failed"
        - order_id: The order settled
        - state: TransferRecord state after the attempt
    """
    from settlements.services import TransferOrchestrator

    logger.info(
        "Settling order",
        extra={"order_id": order_id, "celery_retries": self.request.retries},
    )

    try:
        record = TransferOrchestrator.settle(order_id)
    except LockAcquisitionError as e:
        logger.warning(
            f"Could not acquire lock for settlement: {e}",
            extra={"order_id": order_id},
        )
        return {"status": "lock_failed", "order_id": order_id, "error": str(e)}
    except SettlementNotFoundError as e:
        logger.error(
            f"Cannot settle order: {e.message}",
            extra={"order_id": order_id},
        )
        return {"status": "not_found", "order_id": order_id}

    if record.is_succeeded:
        status = "settled"
    elif record.is_terminal:
        status = "failed"
    else:
        status = "retrying"

    return {
        "status": status,
        "order_id": order_id,
        "state": record.state,
        "attempt_count": record.attempt_count,
        "stripe_transfer_id": record.stripe_transfer_id,
    }


@shared_task
def retry_due_transfers() -> dict:
    """
    Periodic task to queue settlements whose next attempt is due.

    Covers attempts whose scheduled task was lost and merchants whose
    payout account has had time to be fixed.

    Returns:
        Dict with count of settlements queued
    """
    due_records = (
        TransferRecord.objects.due(timezone.now())
        .order_by("next_attempt_at", "created_at")
        .values_list("order_id", flat=True)[:BATCH_SIZE]
    )

    queued_count = 0
    for order_id in due_records:
        try:
            settle_order.delay(str(order_id))
            queued_count += 1
        except Exception as e:
            logger.error(
                f"Failed to queue settlement: {e}",
                extra={"order_id": str(order_id)},
            )

    if queued_count > 0:
        logger.info(
            f"Queued {queued_count} due settlements",
            extra={"queued_count": queued_count},
        )

    return {"queued_count": queued_count}
