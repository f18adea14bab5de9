"""
Tests for marketplace Celery tasks.
"""

from datetime import timedelta

import pytest
from django.db import OperationalError
from django.utils import timezone

from marketplace.state_machines import SubscriptionTier
from marketplace.tasks import expire_lapsed_tiers
from marketplace.tests.factories import MerchantAccountFactory


@pytest.mark.django_db
class TestExpireLapsedTiers:
    def test_expires_lapsed_merchants(self):
        lapsed = MerchantAccountFactory(
            tier=SubscriptionTier.STANDARD,
            tier_expires_at=timezone.now() - timedelta(hours=1),
        )
        MerchantAccountFactory(
            tier=SubscriptionTier.PREMIUM,
            tier_expires_at=timezone.now() + timedelta(days=5),
        )

        result = expire_lapsed_tiers()

        assert result == {"expired_count": 1}
        lapsed.refresh_from_db()
        assert lapsed.tier == SubscriptionTier.FREE

    def test_nothing_lapsed(self):
        MerchantAccountFactory()

        assert expire_lapsed_tiers() == {"expired_count": 0}

    def test_database_errors_propagate(self, mocker):
        mocker.patch(
            "marketplace.services.TierReconciler.expire_lapsed",
            side_effect=OperationalError("database is locked"),
        )

        with pytest.raises(OperationalError):
            expire_lapsed_tiers()
