"""
MerchantAccount model: a wholesaler selling through the marketplace.

A merchant has a subscription tier (mutated only by the TierReconciler) and,
once onboarded, a Stripe Connect account that receives order payouts.

Usage:
    from marketplace.models import MerchantAccount

    merchant = MerchantAccount.objects.get(id=merchant_id)
    if merchant.effective_tier() == SubscriptionTier.FREE:
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models
from django.db.models import F
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from marketplace.state_machines import TIER_PRODUCT_LIMITS, SubscriptionTier

if TYPE_CHECKING:
    from datetime import datetime


class MerchantAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    A wholesaler account.

    Fields:
        business_name: Trading name, also the source of the order prefix
        email: Address for new-order alerts
        tier: Purchased subscription tier
        tier_expires_at: End of the current paid period (null on free)
        product_limit: Listing limit for the tier (-1 = unlimited)
        payout_account_id: Stripe Connect account id (acct_xxx)
        payout_account_ready: Last known result of the live readiness check
        payout_requirements_due: Stripe requirements.currently_due at last check
        payout_status_checked_at: When readiness was last checked
        version: Optimistic locking version field

    Note:
        payout_account_ready is a cache for display and sweeps. Settlement
        always re-checks the account live before moving money.
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    business_name = models.CharField(
        max_length=200,
        blank=True,
        default="",
        help_text="Trading name shown to buyers",
    )

    email = models.EmailField(
        blank=True,
        default="",
        help_text="Address that receives new-order alerts",
    )

    # ==========================================================================
    # Subscription Tier
    # ==========================================================================

    tier = models.CharField(
        max_length=20,
        choices=SubscriptionTier.choices,
        default=SubscriptionTier.FREE,
        db_index=True,
        help_text="Purchased subscription tier (changed only by the tier reconciler)",
    )

    tier_expires_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the paid tier lapses back to free",
    )

    product_limit = models.IntegerField(
        default=TIER_PRODUCT_LIMITS[SubscriptionTier.FREE],
        help_text="Maximum listed products for the tier (-1 = unlimited)",
    )

    # ==========================================================================
    # Payout Account (Stripe Connect)
    # ==========================================================================

    payout_account_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Connect account ID (acct_xxx), null until onboarded",
    )

    payout_account_ready = models.BooleanField(
        default=False,
        help_text="Whether the last live check found the account able to receive transfers",
    )

    payout_requirements_due = models.JSONField(
        default=list,
        blank=True,
        help_text="Outstanding Stripe requirements at the last check",
    )

    payout_status_checked_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When payout readiness was last checked against Stripe",
    )

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        ordering = ["business_name"]
        verbose_name = "Merchant Account"
        verbose_name_plural = "Merchant Accounts"

    def __str__(self) -> str:
        return f"MerchantAccount({self.business_name or self.id}, {self.tier})"

    def save(self, *args, **kwargs):
        """Save with version auto-increment for optimistic locking."""
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    def effective_tier(self, now: datetime | None = None) -> str:
        """
        Tier the merchant is entitled to right now.

        A paid tier whose period has passed counts as free even before the
        expiry sweep has rewritten the row.
        """
        now = now or timezone.now()
        if self.tier == SubscriptionTier.FREE:
            return SubscriptionTier.FREE
        if self.tier_expires_at is not None and self.tier_expires_at <= now:
            return SubscriptionTier.FREE
        return self.tier

    @property
    def order_number_prefix(self) -> str:
        """First three letters of the business name, upper-cased, else ORD."""
        letters = "".join(ch for ch in self.business_name if ch.isalpha())
        if not letters:
            return "ORD"
        return letters[:3].upper()
