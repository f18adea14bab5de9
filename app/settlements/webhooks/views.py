"""
Webhook endpoint for Stripe payment events.

The view:
1. Verifies the webhook signature
2. Drops event types no handler is registered for
3. Creates/retrieves the WebhookEvent record (idempotent)
4. Queues the event for async processing
5. Returns {"received": true} immediately

Nothing is persisted or queued for a request that fails verification.
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from settlements.adapters import StripeAdapter
from settlements.exceptions import StripeInvalidRequestError
from settlements.models import WebhookEvent
from settlements.state_machines import WebhookEventStatus
from settlements.webhooks.handlers import is_recognized

logger = logging.getLogger(__name__)

RECEIVED = {"received": True}

# Redeliveries of these are acknowledged without requeueing
FINAL_STATUSES = (WebhookEventStatus.PROCESSED, WebhookEventStatus.REJECTED)


@csrf_exempt
@require_POST
def payments_webhook(request: HttpRequest) -> JsonResponse:
    """
    Receive and queue Stripe webhook events.

    Stripe expects a 2xx response within 20 seconds, so all business
    logic runs in the process_webhook_event task.

    Returns:
        JsonResponse with status:
        - 200: Event accepted (new, duplicate, ignored type or malformed)
        - 400: Missing or invalid signature
        - 500: Unexpected internal error

    Example Stripe-Signature header:
        t=1614556800,v1=xxx,v0=yyy
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return JsonResponse({"error": "Missing signature"}, status=400)

    try:
        event_data = StripeAdapter.verify_webhook_signature(payload, signature)
    except StripeInvalidRequestError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": e.message},
        )
        return JsonResponse({"error": "Invalid signature"}, status=400)
    except Exception as e:
        logger.error(
            f"Unexpected error verifying webhook: {type(e).__name__}",
            exc_info=True,
        )
        return JsonResponse({"error": "Internal error"}, status=500)

    stripe_event_id = event_data.get("id")
    event_type = event_data.get("type")

    if not stripe_event_id or not event_type:
        # Signed by Stripe, so redelivery would bring the same envelope back
        logger.error(
            "Signed webhook missing id or type; acknowledged and dropped",
            extra={
                "stripe_event_id": stripe_event_id,
                "event_type": event_type,
                "data_quality_incident": True,
            },
        )
        return JsonResponse(RECEIVED)

    if not is_recognized(event_type):
        logger.info(
            f"Ignoring unhandled webhook type: {event_type}",
            extra={"stripe_event_id": stripe_event_id, "event_type": event_type},
        )
        return JsonResponse(RECEIVED)

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={"stripe_event_id": stripe_event_id, "event_type": event_type},
    )

    try:
        webhook_event, created = WebhookEvent.objects.get_or_create(
            stripe_event_id=stripe_event_id,
            defaults={
                "event_type": event_type,
                "payload": event_data,
                "status": WebhookEventStatus.PENDING,
            },
        )
    except Exception as e:
        logger.error(
            f"Failed to record webhook: {type(e).__name__}",
            extra={"stripe_event_id": stripe_event_id},
            exc_info=True,
        )
        return JsonResponse({"error": "Internal error"}, status=500)

    if not created and webhook_event.status in FINAL_STATUSES:
        logger.info(
            f"Webhook already {webhook_event.status}, returning success",
            extra={"stripe_event_id": stripe_event_id},
        )
        return JsonResponse(RECEIVED)

    try:
        from settlements.tasks import process_webhook_event

        process_webhook_event.delay(str(webhook_event.id))
        logger.info(
            "Webhook queued for processing",
            extra={
                "stripe_event_id": stripe_event_id,
                "webhook_event_id": str(webhook_event.id),
            },
        )
    except Exception as e:
        # The row stays pending and retry_failed_webhooks picks it up
        logger.error(
            f"Failed to queue webhook: {type(e).__name__}",
            extra={"stripe_event_id": stripe_event_id},
            exc_info=True,
        )

    return JsonResponse(RECEIVED)
