"""
Webhook event handlers for Stripe events.

One registry maps each recognized event type to its handler. The view only
persists events whose type is registered here; anything else is
acknowledged and dropped.

Handlers return a ServiceResult. A failure whose error_code is in
DATA_QUALITY_ERROR_CODES means the event itself is bad: the task marks it
rejected instead of failed, so it is never retried. Any other failure, or an
exception, leaves the event for the retry sweep.

Usage:
    from settlements.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Callable

from django.db import transaction
from django.utils import timezone

from core.services import ServiceResult

from marketplace.exceptions import (
    DuplicatePaymentError,
    FeeCalculationError,
    MarketplaceValidationError,
    OrderIntentValidationError,
    TierDowngradeNotAllowedError,
    TierTransitionError,
    UnknownMerchantError,
    UnknownPlanError,
)
from marketplace.fees import compute_breakdown
from marketplace.intents import (
    is_customer_portal_payment,
    is_plan_purchase,
    parse_merchant_reference,
    parse_order_intent,
    parse_plan_intent,
)
from marketplace.models import MerchantAccount
from marketplace.services import OrderMaterializer, TierReconciler
from marketplace.state_machines import SubscriptionTier
from settlements.adapters import AccountResult
from settlements.gateway import PayoutAccountStatus, StripePayoutGateway
from settlements.models import TransferRecord, WebhookEvent
from settlements.services import TransferOrchestrator
from settlements.state_machines import TransferState

logger = logging.getLogger(__name__)

INVALID_WEBHOOK_PAYLOAD = "INVALID_WEBHOOK_PAYLOAD"

# Failures caused by the event's own data; retrying cannot help
DATA_QUALITY_ERROR_CODES = frozenset(
    {
        INVALID_WEBHOOK_PAYLOAD,
        MarketplaceValidationError.default_error_code,
        OrderIntentValidationError.default_error_code,
        FeeCalculationError.default_error_code,
        UnknownMerchantError.default_error_code,
        TierTransitionError.default_error_code,
        UnknownPlanError.default_error_code,
        TierDowngradeNotAllowedError.default_error_code,
    }
)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler("payment_intent.succeeded")
        def handle_payment_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def is_recognized(event_type: str | None) -> bool:
    return bool(event_type) and event_type in WEBHOOK_HANDLERS


def is_data_quality_failure(result: ServiceResult) -> bool:
    return not result.success and result.error_code in DATA_QUALITY_ERROR_CODES


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Validation errors raised by the marketplace services are returned as
    failures carrying their error code; other exceptions propagate.

    Returns:
        ServiceResult from the handler, or success if no handler
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )

    try:
        return handler(webhook_event)
    except MarketplaceValidationError as e:
        return ServiceResult.failure(
            e.message,
            error_code=e.error_code,
            errors={key: [str(value)] for key, value in e.details.items()},
        )


def _missing_object_id(webhook_event: WebhookEvent) -> ServiceResult:
    logger.error(
        f"{webhook_event.event_type}: Could not extract object id",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )
    return ServiceResult.failure(
        "Could not extract object id from webhook",
        error_code=INVALID_WEBHOOK_PAYLOAD,
    )


# =============================================================================
# Payment Handlers
# =============================================================================


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Handle a captured payment.

    Customer portal payments become orders; plan purchases go to the tier
    reconciler. Anything else paid through the platform is ignored.
    """
    payment_intent_id = webhook_event.get_object_id()
    if not payment_intent_id:
        return _missing_object_id(webhook_event)

    metadata = webhook_event.get_metadata()

    if is_customer_portal_payment(metadata):
        return _materialize_order(webhook_event, payment_intent_id, metadata)

    if is_plan_purchase(metadata):
        return _apply_plan_purchase(webhook_event, metadata)

    logger.info(
        "payment_intent.succeeded is neither an order nor a plan purchase; ignoring",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "payment_intent_id": payment_intent_id,
        },
    )
    return ServiceResult.success(None)


@register_handler("checkout.session.completed")
def handle_checkout_session_completed(webhook_event: WebhookEvent) -> ServiceResult:
    """Handle a completed subscription checkout (a plan purchase)."""
    metadata = webhook_event.get_metadata()

    if not is_plan_purchase(metadata):
        logger.info(
            "checkout.session.completed without plan metadata; ignoring",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "session_id": webhook_event.get_object_id(),
            },
        )
        return ServiceResult.success(None)

    return _apply_plan_purchase(webhook_event, metadata)


def _materialize_order(
    webhook_event: WebhookEvent, payment_intent_id: str, metadata: dict
) -> ServiceResult:
    order_intent = parse_order_intent(metadata)
    breakdown = compute_breakdown(
        product_subtotal=order_intent.product_subtotal_minor_units,
        delivery_fee=order_intent.delivery_fee_minor_units,
    )

    amount_received = webhook_event.data_object.get("amount_received")
    if amount_received is not None and amount_received != breakdown.total_charged_to_buyer:
        logger.warning(
            "Captured amount differs from the computed total",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "payment_intent_id": payment_intent_id,
                "amount_received": amount_received,
                "total_charged_to_buyer": breakdown.total_charged_to_buyer,
            },
        )

    try:
        with transaction.atomic():
            order = OrderMaterializer.materialize(order_intent, breakdown, payment_intent_id)
            TransferOrchestrator.create_for_order(order)
    except DuplicatePaymentError as e:
        logger.info(
            "Payment already produced an order; nothing to do",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "payment_intent_id": payment_intent_id,
                "order_id": str(e.decision.order_id) if e.decision else None,
            },
        )
        return ServiceResult.success(e.decision)

    return ServiceResult.success(order)


def _apply_plan_purchase(webhook_event: WebhookEvent, metadata: dict) -> ServiceResult:
    plan_intent = parse_plan_intent(metadata)
    merchant = TierReconciler.apply_plan_purchase(plan_intent.merchant_id, plan_intent.plan_id)

    logger.info(
        "Plan purchase applied",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "merchant_id": str(merchant.id),
            "tier": merchant.tier,
        },
    )
    return ServiceResult.success(merchant)


# =============================================================================
# Subscription Handlers
# =============================================================================


@register_handler("customer.subscription.deleted")
def handle_subscription_deleted(webhook_event: WebhookEvent) -> ServiceResult:
    """Cancelled subscription: explicit downgrade to free."""
    merchant_id = parse_merchant_reference(webhook_event.get_metadata())

    if merchant_id is None:
        logger.info(
            "customer.subscription.deleted without a merchant id; ignoring",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "subscription_id": webhook_event.get_object_id(),
            },
        )
        return ServiceResult.success(None)

    merchant = TierReconciler.apply_downgrade(merchant_id, SubscriptionTier.FREE)
    return ServiceResult.success(merchant)


# =============================================================================
# Connect Handlers
# =============================================================================


@register_handler("account.updated")
def handle_account_updated(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Refresh a merchant's payout readiness from a Connect account update.

    When the account can receive transfers again, every settlement waiting
    on it is queued. Settlement re-checks the account live either way.
    """
    account_id = webhook_event.get_object_id()
    if not account_id:
        return _missing_object_id(webhook_event)

    merchant = MerchantAccount.objects.filter(payout_account_id=account_id).first()
    if merchant is None:
        logger.info(
            "No merchant for Connect account, may be external",
            extra={"account_id": account_id, "stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    status = PayoutAccountStatus.from_account(AccountResult.from_dict(webhook_event.data_object))
    StripePayoutGateway.record_account_status(merchant.id, status)

    if not status.ready:
        return ServiceResult.success(status)

    waiting_order_ids = list(
        TransferRecord.objects.filter(
            merchant=merchant,
            state=TransferState.FAILED_RETRYABLE,
        ).values_list("order_id", flat=True)
    )
    for order_id in waiting_order_ids:
        transaction.on_commit(partial(TransferOrchestrator.schedule, order_id))

    logger.info(
        f"Payout account ready; queued {len(waiting_order_ids)} waiting settlements",
        extra={
            "merchant_id": str(merchant.id),
            "account_id": account_id,
            "queued_count": len(waiting_order_ids),
        },
    )
    return ServiceResult.success(status)


@register_handler("transfer.created")
def handle_transfer_created(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Confirm a transfer we created.

    The record is found by transfer id, or by the order id we put in the
    transfer's metadata when the transfer id was never stored (a worker died
    between Stripe accepting the transfer and our save).
    """
    transfer_id = webhook_event.get_object_id()
    if not transfer_id:
        return _missing_object_id(webhook_event)

    record = TransferRecord.objects.filter(stripe_transfer_id=transfer_id).first()
    if record is None:
        order_id = webhook_event.get_metadata().get("order_id")
        if order_id:
            record = TransferRecord.objects.filter(order_id=order_id).first()

    if record is None:
        logger.warning(
            "TransferRecord not found for transfer (may be external)",
            extra={"transfer_id": transfer_id, "stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    TransferRecord.objects.filter(id=record.id, confirmed_at__isnull=True).update(
        confirmed_at=timezone.now()
    )
    TransferRecord.objects.filter(id=record.id, stripe_transfer_id__isnull=True).update(
        stripe_transfer_id=transfer_id
    )

    logger.info(
        "Transfer confirmed",
        extra={
            "transfer_record_id": str(record.id),
            "order_id": str(record.order_id),
            "transfer_id": transfer_id,
            "state": record.state,
        },
    )
    return ServiceResult.success(record)
