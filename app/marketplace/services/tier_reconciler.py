"""
Subscription tier reconciliation.

Tiers are ranked free < standard < premium. A paid tier lasts
TIER_BILLING_PERIOD_DAYS; once it lapses the merchant is effectively free
even before expire_lapsed() rewrites the row.

Plan purchases can only move a merchant up (or renew a lapsed tier).
Re-applying the plan the merchant already has is a no-op, so duplicate or
replayed purchase events change nothing. Moving down is only possible
through apply_downgrade(), which subscription cancellation uses.

Usage:
    merchant = TierReconciler.apply_plan_purchase(merchant_id, "premium")
    merchant = TierReconciler.apply_downgrade(merchant_id, "free")
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db.models import F
from django.utils import timezone

from core.services import BaseService

from marketplace.exceptions import (
    TierDowngradeNotAllowedError,
    TierTransitionError,
    UnknownMerchantError,
    UnknownPlanError,
)
from marketplace.models import MerchantAccount
from marketplace.state_machines import TIER_PRODUCT_LIMITS, TIER_RANK, SubscriptionTier

if TYPE_CHECKING:
    from datetime import datetime


class TierReconciler(BaseService):
    """The only writer of MerchantAccount.tier."""

    @classmethod
    def apply_plan_purchase(
        cls, merchant_id, plan_id: str, now: datetime | None = None
    ) -> MerchantAccount:
        """
        Apply a purchased plan.

        Returns the merchant unchanged when the plan is the one it already
        has and it has not lapsed.

        Raises:
            UnknownPlanError: plan_id is not a tier
            UnknownMerchantError: no such merchant
            TierDowngradeNotAllowedError: plan is below the effective tier
        """
        target = cls._resolve_plan(plan_id)
        now = now or timezone.now()

        with cls.atomic():
            merchant = cls._lock_merchant(merchant_id)
            current = merchant.effective_tier(now)

            if TIER_RANK[target] == TIER_RANK[current]:
                cls.get_logger().info(
                    f"Merchant {merchant.id} already on {target}; nothing to apply",
                    extra={"merchant_id": str(merchant.id), "tier": target},
                )
                return merchant

            if TIER_RANK[target] < TIER_RANK[current]:
                raise TierDowngradeNotAllowedError(
                    f"Plan {target} is below the current tier {current}",
                    details={
                        "merchant_id": str(merchant.id),
                        "current_tier": current,
                        "target_tier": target,
                    },
                )

            cls._set_tier(merchant, target, now)

        cls.get_logger().info(
            f"Merchant {merchant.id} upgraded {current} -> {target}",
            extra={
                "merchant_id": str(merchant.id),
                "from_tier": current,
                "to_tier": target,
                "tier_expires_at": merchant.tier_expires_at.isoformat(),
            },
        )
        return merchant

    @classmethod
    def apply_downgrade(
        cls, merchant_id, plan_id: str = SubscriptionTier.FREE, now: datetime | None = None
    ) -> MerchantAccount:
        """
        Explicitly move a merchant down (or keep it where it is).

        Raises:
            UnknownPlanError: plan_id is not a tier
            UnknownMerchantError: no such merchant
            TierTransitionError: plan is above the effective tier
        """
        target = cls._resolve_plan(plan_id)
        now = now or timezone.now()

        with cls.atomic():
            merchant = cls._lock_merchant(merchant_id)
            current = merchant.effective_tier(now)

            if TIER_RANK[target] > TIER_RANK[current]:
                raise TierTransitionError(
                    f"Plan {target} is above the current tier {current}; purchase it instead",
                    details={
                        "merchant_id": str(merchant.id),
                        "current_tier": current,
                        "target_tier": target,
                    },
                )
            if target == merchant.tier and TIER_RANK[target] == TIER_RANK[current]:
                return merchant

            cls._set_tier(merchant, target, now)

        cls.get_logger().info(
            f"Merchant {merchant.id} downgraded {current} -> {target}",
            extra={"merchant_id": str(merchant.id), "from_tier": current, "to_tier": target},
        )
        return merchant

    @classmethod
    def expire_lapsed(cls, now: datetime | None = None) -> int:
        """Return merchants whose paid period has ended to free."""
        now = now or timezone.now()
        count = (
            MerchantAccount.objects.exclude(tier=SubscriptionTier.FREE)
            .filter(tier_expires_at__lte=now)
            .update(
                tier=SubscriptionTier.FREE,
                tier_expires_at=None,
                product_limit=TIER_PRODUCT_LIMITS[SubscriptionTier.FREE],
                version=F("version") + 1,
                updated_at=now,
            )
        )
        if count:
            cls.get_logger().info(f"Expired {count} lapsed merchant tiers")
        return count

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @staticmethod
    def _resolve_plan(plan_id: str) -> str:
        plan = str(plan_id or "").strip().lower()
        if plan not in SubscriptionTier.values:
            raise UnknownPlanError(
                f"Unknown plan {plan_id!r}",
                details={"plan_id": plan_id, "known_plans": list(SubscriptionTier.values)},
            )
        return SubscriptionTier(plan)

    @staticmethod
    def _lock_merchant(merchant_id) -> MerchantAccount:
        merchant = MerchantAccount.objects.select_for_update().filter(id=merchant_id).first()
        if merchant is None:
            raise UnknownMerchantError(
                f"Merchant {merchant_id} does not exist",
                details={"merchant_id": str(merchant_id)},
            )
        return merchant

    @staticmethod
    def _set_tier(merchant: MerchantAccount, tier: str, now: datetime) -> None:
        merchant.tier = tier
        merchant.product_limit = TIER_PRODUCT_LIMITS[tier]
        if tier == SubscriptionTier.FREE:
            merchant.tier_expires_at = None
        else:
            merchant.tier_expires_at = now + timedelta(days=settings.TIER_BILLING_PERIOD_DAYS)
        merchant.save(
            update_fields=["tier", "tier_expires_at", "product_limit", "version", "updated_at"]
        )
