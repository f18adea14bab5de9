"""
TransferRecord model for settling an order with its merchant.

Exactly one TransferRecord exists per paid order. It tracks the transfer of
the merchant's payout to their Stripe Connect account through retries,
account readiness problems and operator intervention.

Usage:
    from settlements.models import TransferRecord

    record = TransferRecord.objects.create(
        order=order,
        merchant=order.merchant,
        amount_minor_units=order.merchant_payout_minor_units,
        currency=order.currency,
    )

    record.mark_succeeded("tr_123")
    record.save()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.managers import BaseQuerySet
from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from settlements.state_machines import TransferState

if TYPE_CHECKING:
    from datetime import datetime


class TransferRecordQuerySet(BaseQuerySet):
    def due(self, now: datetime | None = None) -> TransferRecordQuerySet:
        """Records waiting for an attempt whose scheduled time has passed."""
        now = now or timezone.now()
        return self.filter(
            state__in=[TransferState.PENDING, TransferState.FAILED_RETRYABLE],
        ).filter(Q(next_attempt_at__isnull=True) | Q(next_attempt_at__lte=now))

    def for_payout_account(self, payout_account_id: str) -> TransferRecordQuerySet:
        return self.filter(merchant__payout_account_id=payout_account_id)


class TransferRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    Settlement of one order's merchant payout.

    State Flow:
        PENDING -> SUCCEEDED
        PENDING/FAILED_RETRYABLE -> FAILED_RETRYABLE (retry scheduled)
        PENDING/FAILED_RETRYABLE -> SUCCEEDED
        PENDING/FAILED_RETRYABLE -> FAILED_PERMANENT
        FAILED_PERMANENT -> PENDING (operator requeue)

    Fields:
        order: The order being settled (one-to-one)
        merchant: Merchant receiving the payout
        amount_minor_units: Merchant payout from the order breakdown
        currency: ISO 4217 currency code
        state: Current FSM state
        attempt_count: Transfer attempts consumed
        last_error: Most recent failure, for operators
        missing_requirements: Stripe requirements blocking the account
        next_attempt_at: When the next attempt is due
        stripe_transfer_id: Stripe Transfer ID (tr_xxx) once created
        idempotency_key: Key sent with the transfer, stable per order
        succeeded_at: When Stripe accepted the transfer
        confirmed_at: When transfer.created arrived for it
        failed_permanently_at: When retries stopped
        version: Optimistic locking version

    Note:
        Accounts that are not ready do not consume attempts. Only calls
        that could have moved money count against SETTLEMENT_MAX_ATTEMPTS.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.OneToOneField(
        "marketplace.Order",
        on_delete=models.PROTECT,
        related_name="transfer_record",
        help_text="Order being settled",
    )

    merchant = models.ForeignKey(
        "marketplace.MerchantAccount",
        on_delete=models.PROTECT,
        related_name="transfer_records",
        help_text="Merchant receiving the payout",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount_minor_units = models.PositiveBigIntegerField(
        help_text="Merchant payout in minor units",
    )

    currency = models.CharField(
        max_length=3,
        default="gbp",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    state = FSMField(
        default=TransferState.PENDING,
        choices=TransferState.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the settlement (managed by FSM)",
    )

    attempt_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Transfer attempts consumed",
    )

    last_error = models.TextField(
        blank=True,
        default="",
        help_text="Most recent failure reason",
    )

    missing_requirements = models.JSONField(
        default=list,
        blank=True,
        help_text="Stripe requirements blocking the payout account",
    )

    next_attempt_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the next settlement attempt is due",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Transfer ID (tr_xxx)",
    )

    idempotency_key = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Idempotency key sent with the transfer",
    )

    # ==========================================================================
    # Timestamps
    # ==========================================================================

    succeeded_at = models.DateTimeField(null=True, blank=True)
    confirmed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When Stripe's transfer.created callback arrived",
    )
    failed_permanently_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    objects = TransferRecordQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Transfer Record"
        verbose_name_plural = "Transfer Records"
        indexes = [
            models.Index(fields=["merchant", "state"], name="transfer_merchant_state_idx"),
            models.Index(fields=["state", "next_attempt_at"], name="transfer_state_due_idx"),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.amount_minor_units / 100:.2f} {self.currency.upper()}"
        return f"TransferRecord({self.order_id}, {self.state}, {amount_display})"

    def save(self, *args, **kwargs):
        """Save with version auto-increment for optimistic locking."""
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=state,
        source=[TransferState.PENDING, TransferState.FAILED_RETRYABLE],
        target=TransferState.SUCCEEDED,
    )
    def mark_succeeded(self, stripe_transfer_id: str | None):
        """
        Transition: PENDING/FAILED_RETRYABLE -> SUCCEEDED

        stripe_transfer_id is None only for zero-amount payouts, which
        need no transfer.
        """
        self.stripe_transfer_id = stripe_transfer_id
        self.succeeded_at = timezone.now()
        self.next_attempt_at = None
        self.last_error = ""
        self.missing_requirements = []

    @transition(
        field=state,
        source=[TransferState.PENDING, TransferState.FAILED_RETRYABLE],
        target=TransferState.FAILED_RETRYABLE,
    )
    def mark_retryable(
        self,
        reason: str,
        next_attempt_at: datetime,
        missing_requirements: list[str] | None = None,
    ):
        """
        Transition: PENDING/FAILED_RETRYABLE -> FAILED_RETRYABLE

        The caller decides whether the failure consumed an attempt.
        """
        self.last_error = reason
        self.next_attempt_at = next_attempt_at
        self.missing_requirements = list(missing_requirements or [])

    @transition(
        field=state,
        source=[TransferState.PENDING, TransferState.FAILED_RETRYABLE],
        target=TransferState.FAILED_PERMANENT,
    )
    def mark_failed_permanently(self, reason: str):
        """Transition: PENDING/FAILED_RETRYABLE -> FAILED_PERMANENT"""
        self.last_error = reason
        self.next_attempt_at = None
        self.failed_permanently_at = timezone.now()

    @transition(
        field=state,
        source=TransferState.FAILED_PERMANENT,
        target=TransferState.PENDING,
    )
    def requeue(self):
        """
        Transition: FAILED_PERMANENT -> PENDING

        Operator action once the cause has been fixed. Grants a fresh
        attempt budget; the idempotency key is kept so a transfer that did
        reach Stripe is not repeated.
        """
        self.attempt_count = 0
        self.next_attempt_at = timezone.now()
        self.failed_permanently_at = None

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_succeeded(self) -> bool:
        return self.state == TransferState.SUCCEEDED

    @property
    def is_terminal(self) -> bool:
        return self.state in (TransferState.SUCCEEDED, TransferState.FAILED_PERMANENT)

    @property
    def is_confirmed(self) -> bool:
        return self.confirmed_at is not None
