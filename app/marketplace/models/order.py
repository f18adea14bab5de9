"""
Order models.

This module contains:
- Order: A buyer's purchase from one merchant, created from a captured payment
- OrderLineItem: One cart line of an order
- OrderNumberSequence: Per-merchant, per-day counter behind order numbers

Orders are never deleted. Once an order is paid its line items are frozen,
and the only remaining changes are status transitions.

Usage:
    from marketplace.models import Order

    order = Order.objects.get(external_object_id="pi_123")
    order.fulfill()  # only once the merchant transfer has succeeded
    order.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.managers import PermanentRecordQuerySet
from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin
from core.exceptions import ConflictError

from marketplace.state_machines import FulfillmentType, OrderStatus


def _payout_settled(order: Order) -> bool:
    record = getattr(order, "transfer_record", None)
    return record is not None and record.is_succeeded


class Order(UUIDPrimaryKeyMixin, BaseModel):
    """
    A paid purchase from a single merchant.

    State Flow:
        PENDING -> PAID -> FULFILLED
        PENDING/PAID -> CANCELLED

    Fields:
        order_number: Human-readable PREFIX-YYMMDD-NNN, unique per merchant
        external_object_id: Stripe PaymentIntent id, the idempotency key
        merchant / buyer: Parties to the order
        status: Current FSM status
        *_minor_units: The price breakdown, in pence
        fulfillment_type / delivery_carrier / delivery_address: How it ships
        buyer_name / buyer_email / buyer_phone: Contact details as supplied
            at checkout, kept even when the Buyer record holds other values
        paid_at / fulfilled_at / cancelled_at: Transition timestamps
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    order_number = models.CharField(
        max_length=40,
        help_text="Human-readable order number, unique per merchant",
    )

    external_object_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Payment processor object id (pi_xxx); one order per payment",
    )

    # ==========================================================================
    # Relationships
    # ==========================================================================

    merchant = models.ForeignKey(
        "marketplace.MerchantAccount",
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="Merchant fulfilling the order",
    )

    buyer = models.ForeignKey(
        "marketplace.Buyer",
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="Buyer who placed the order",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=OrderStatus.PENDING,
        choices=OrderStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current status of the order (managed by FSM)",
    )

    # ==========================================================================
    # Price Breakdown (minor units)
    # ==========================================================================

    product_subtotal_minor_units = models.PositiveBigIntegerField(
        help_text="Sum of line totals",
    )

    delivery_fee_minor_units = models.PositiveBigIntegerField(
        default=0,
        help_text="Delivery cost charged to the buyer",
    )

    buyer_service_fee_minor_units = models.PositiveBigIntegerField(
        help_text="Service fee charged to the buyer (carries rounding)",
    )

    merchant_service_fee_minor_units = models.PositiveBigIntegerField(
        help_text="Service fee withheld from the merchant",
    )

    total_charged_minor_units = models.PositiveBigIntegerField(
        help_text="Amount the buyer paid",
    )

    platform_retained_minor_units = models.PositiveBigIntegerField(
        help_text="Amount the platform keeps (fees plus delivery)",
    )

    merchant_payout_minor_units = models.PositiveBigIntegerField(
        help_text="Amount transferred to the merchant",
    )

    currency = models.CharField(
        max_length=3,
        default="gbp",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # Fulfillment
    # ==========================================================================

    fulfillment_type = models.CharField(
        max_length=20,
        choices=FulfillmentType.choices,
        default=FulfillmentType.PICKUP,
        help_text="Pickup or delivery",
    )

    delivery_carrier = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Carrier or delivery service name",
    )

    delivery_address = models.TextField(
        blank=True,
        default="",
        help_text="Address the order ships to",
    )

    # ==========================================================================
    # Buyer Contact Snapshot
    # ==========================================================================

    buyer_name = models.CharField(max_length=200, blank=True, default="")
    buyer_email = models.EmailField(blank=True, default="")
    buyer_phone = models.CharField(max_length=32, blank=True, default="")

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    paid_at = models.DateTimeField(null=True, blank=True, help_text="When payment was confirmed")
    fulfilled_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    objects = PermanentRecordQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(fields=["merchant", "status"], name="order_merchant_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["merchant", "order_number"],
                name="order_number_unique_per_merchant",
            ),
            models.CheckConstraint(
                condition=models.Q(
                    total_charged_minor_units=models.F("product_subtotal_minor_units")
                    + models.F("delivery_fee_minor_units")
                    + models.F("buyer_service_fee_minor_units")
                ),
                name="order_total_reconciles",
            ),
        ]

    def __str__(self) -> str:
        return f"Order({self.order_number}, {self.status})"

    def delete(self, *args, **kwargs):
        raise ConflictError(
            "Orders cannot be deleted",
            error_code="DELETE_FORBIDDEN",
            details={"order_id": str(self.pk)},
        )

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=OrderStatus.PENDING, target=OrderStatus.PAID)
    def mark_paid(self):
        """Transition: PENDING -> PAID"""
        self.paid_at = timezone.now()

    @transition(
        field=status,
        source=OrderStatus.PAID,
        target=OrderStatus.FULFILLED,
        conditions=[_payout_settled],
    )
    def fulfill(self):
        """
        Transition: PAID -> FULFILLED

        Only allowed once the merchant's transfer has succeeded.
        """
        self.fulfilled_at = timezone.now()

    @transition(
        field=status,
        source=[OrderStatus.PENDING, OrderStatus.PAID],
        target=OrderStatus.CANCELLED,
    )
    def cancel(self):
        """Transition: PENDING/PAID -> CANCELLED"""
        self.cancelled_at = timezone.now()

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_fulfillment_eligible(self) -> bool:
        return self.status == OrderStatus.PAID and _payout_settled(self)

    @property
    def line_items_frozen(self) -> bool:
        return self.status != OrderStatus.PENDING


class OrderLineItem(BaseModel):
    """
    One cart line of an order.

    Line items are written once, together with their order, and refuse
    updates or deletion after the order has left PENDING.
    """

    order = models.ForeignKey(
        "marketplace.Order",
        on_delete=models.PROTECT,
        related_name="line_items",
        help_text="Order this line belongs to",
    )

    position = models.PositiveIntegerField(
        help_text="Zero-based position in the cart",
    )

    product_id = models.CharField(
        max_length=255,
        help_text="Merchant catalogue product id",
    )

    product_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Product name at time of purchase",
    )

    quantity = models.PositiveIntegerField(help_text="Units purchased")

    unit_price_minor_units = models.PositiveBigIntegerField(
        help_text="Price per unit at time of purchase",
    )

    line_total_minor_units = models.PositiveBigIntegerField(
        help_text="quantity x unit price",
    )

    objects = PermanentRecordQuerySet.as_manager()

    class Meta:
        ordering = ["order", "position"]
        verbose_name = "Order Line Item"
        verbose_name_plural = "Order Line Items"
        constraints = [
            models.UniqueConstraint(
                fields=["order", "position"],
                name="line_item_position_unique",
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="line_item_quantity_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"OrderLineItem({self.product_id} x{self.quantity})"

    def save(self, *args, **kwargs):
        if not self._state.adding and self.order.line_items_frozen:
            raise ConflictError(
                "Line items cannot change once the order is paid",
                error_code="LINE_ITEMS_FROZEN",
                details={"order_id": str(self.order_id)},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ConflictError(
            "Order line items cannot be deleted",
            error_code="DELETE_FORBIDDEN",
            details={"order_id": str(self.order_id)},
        )


class OrderNumberSequence(BaseModel):
    """
    Per-merchant, per-day order counter.

    Incremented under SELECT ... FOR UPDATE so concurrent orders for the same
    merchant on the same day get distinct values.
    """

    merchant = models.ForeignKey(
        "marketplace.MerchantAccount",
        on_delete=models.CASCADE,
        related_name="order_number_sequences",
    )

    day = models.DateField(help_text="UTC day the counter applies to")

    last_value = models.PositiveIntegerField(
        default=0,
        help_text="Last sequence number handed out",
    )

    class Meta:
        ordering = ["-day"]
        verbose_name = "Order Number Sequence"
        verbose_name_plural = "Order Number Sequences"
        constraints = [
            models.UniqueConstraint(
                fields=["merchant", "day"],
                name="order_sequence_unique_per_day",
            ),
        ]

    def __str__(self) -> str:
        return f"OrderNumberSequence({self.merchant_id}, {self.day}, {self.last_value})"
