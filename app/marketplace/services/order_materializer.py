"""
Order materialization from a captured payment.

Turns a validated OrderIntent and its PriceBreakdown into a paid Order with
line items, exactly once per external payment id.

Flow:
    1. IdempotencyGuard.reserve() short-circuits known payments
    2. Buyer upsert (phone first, no silent overwrites)
    3. Order number from the per-merchant-per-day sequence
    4. Order (PAID) + line items in one transaction, inside
       IdempotencyGuard.claim() so a concurrent duplicate becomes
       DuplicatePaymentError
    5. Notifications scheduled with transaction.on_commit

The caller runs this inside its own transaction when it has more to write
atomically with the order (the settlement TransferRecord).

Usage:
    with transaction.atomic():
        order = OrderMaterializer.materialize(intent, breakdown, "pi_123")
        TransferRecord.objects.create(order=order, ...)
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from core.services import BaseService

from marketplace.exceptions import (
    DuplicatePaymentError,
    FeeCalculationError,
    UnknownMerchantError,
)
from marketplace.models import MerchantAccount, Order, OrderLineItem
from marketplace.services.buyers import BuyerRegistry
from marketplace.services.idempotency import AlreadyHandled, IdempotencyGuard
from marketplace.services.order_numbers import OrderNumberAllocator
from marketplace.state_machines import OrderStatus
from notifications.services import Notifier

if TYPE_CHECKING:
    from marketplace.fees import PriceBreakdown
    from marketplace.intents import OrderIntent
    from marketplace.models import Buyer

# Timestamp-suffixed retries after the sequential number collides
MAX_FALLBACK_NUMBERS = 3


class OrderMaterializer(BaseService):
    """Creates orders from captured payments, once per payment."""

    @classmethod
    def materialize(
        cls,
        order_intent: OrderIntent,
        breakdown: PriceBreakdown,
        external_object_id: str,
    ) -> Order:
        """
        Create the paid order for a payment.

        Raises:
            DuplicatePaymentError: the payment already produced an order
            UnknownMerchantError: the intent names a merchant we do not have
            FeeCalculationError: the breakdown does not match the intent
        """
        decision = IdempotencyGuard.reserve(external_object_id)
        if isinstance(decision, AlreadyHandled):
            raise DuplicatePaymentError(
                f"Payment {external_object_id} was already handled",
                details={
                    "external_object_id": external_object_id,
                    "order_id": str(decision.order_id),
                },
                decision=decision,
            )

        cls._check_breakdown(order_intent, breakdown)
        merchant = MerchantAccount.objects.filter(id=order_intent.merchant_id).first()
        if merchant is None:
            raise UnknownMerchantError(
                f"Merchant {order_intent.merchant_id} does not exist",
                details={"merchant_id": order_intent.merchant_id},
            )

        with cls.atomic():
            buyer = BuyerRegistry.upsert(order_intent.buyer)
            order = cls._insert_order(merchant, buyer, order_intent, breakdown, external_object_id)
            transaction.on_commit(partial(Notifier.notify_order_created, order.id))
            transaction.on_commit(partial(Notifier.notify_merchant, order.id))

        cls.get_logger().info(
            f"Materialized order {order.order_number} for payment {external_object_id}",
            extra={
                "order_id": str(order.id),
                "merchant_id": str(merchant.id),
                "external_object_id": external_object_id,
                "total_minor_units": breakdown.total_charged_to_buyer,
            },
        )
        return order

    @classmethod
    def _insert_order(
        cls,
        merchant: MerchantAccount,
        buyer: Buyer,
        order_intent: OrderIntent,
        breakdown: PriceBreakdown,
        external_object_id: str,
    ) -> Order:
        order_number = OrderNumberAllocator.next_number(merchant)
        attempt = 0
        while True:
            try:
                with IdempotencyGuard.claim(external_object_id):
                    return cls._create_rows(
                        merchant, buyer, order_intent, breakdown, external_object_id, order_number
                    )
            except IntegrityError:
                if attempt == MAX_FALLBACK_NUMBERS:
                    raise
                collided = order_number
                order_number = OrderNumberAllocator.fallback_number(merchant, attempt=attempt)
                attempt += 1
                cls.get_logger().warning(
                    f"Order number {collided} collided, using {order_number}",
                    extra={"merchant_id": str(merchant.id), "external_object_id": external_object_id},
                )

    @staticmethod
    def _create_rows(
        merchant: MerchantAccount,
        buyer: Buyer,
        order_intent: OrderIntent,
        breakdown: PriceBreakdown,
        external_object_id: str,
        order_number: str,
    ) -> Order:
        details = order_intent.buyer
        order = Order.objects.create(
            order_number=order_number,
            external_object_id=external_object_id,
            merchant=merchant,
            buyer=buyer,
            status=OrderStatus.PAID,
            paid_at=timezone.now(),
            currency=settings.PAYMENT_CURRENCY,
            fulfillment_type=order_intent.fulfillment_type,
            delivery_carrier=order_intent.delivery_carrier,
            delivery_address=details.formatted_address,
            buyer_name=details.name,
            buyer_email=details.email or "",
            buyer_phone=details.phone or "",
            **breakdown.as_order_fields(),
        )
        OrderLineItem.objects.bulk_create(
            OrderLineItem(
                order=order,
                position=position,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price_minor_units=item.unit_price_minor_units,
                line_total_minor_units=item.line_total_minor_units,
            )
            for position, item in enumerate(order_intent.line_items)
        )
        return order

    @staticmethod
    def _check_breakdown(order_intent: OrderIntent, breakdown: PriceBreakdown) -> None:
        if (
            breakdown.product_subtotal != order_intent.product_subtotal_minor_units
            or breakdown.delivery_fee != order_intent.delivery_fee_minor_units
        ):
            raise FeeCalculationError(
                "Price breakdown does not match the order lines",
                details={
                    "breakdown_subtotal": breakdown.product_subtotal,
                    "intent_subtotal": order_intent.product_subtotal_minor_units,
                    "breakdown_delivery": breakdown.delivery_fee,
                    "intent_delivery": order_intent.delivery_fee_minor_units,
                },
            )
