"""
Tests for StripePayoutGateway.

The Stripe adapter is replaced with a MagicMock through set_stripe_adapter,
so these tests check the gateway's own decisions: what counts as captured,
how account readiness is derived and written back, and which Stripe errors
become "not ready" instead of propagating.
"""

import uuid
from unittest.mock import MagicMock

import pytest

from marketplace.models import MerchantAccount
from marketplace.tests.factories import MerchantAccountFactory
from settlements.adapters import AccountResult, PaymentIntentResult, TransferResult
from settlements.exceptions import (
    SettlementNotFoundError,
    StripeAPIUnavailableError,
    StripeInvalidAccountError,
)
from settlements.gateway import (
    ACCOUNT_UNAVAILABLE,
    NO_PAYOUT_ACCOUNT,
    PayoutAccountStatus,
    StripePayoutGateway,
)


@pytest.fixture
def mock_adapter():
    adapter = MagicMock()
    StripePayoutGateway.set_stripe_adapter(adapter)
    try:
        yield adapter
    finally:
        StripePayoutGateway.set_stripe_adapter(None)


def payment_intent(status: str) -> PaymentIntentResult:
    return PaymentIntentResult(
        id="pi_test_123",
        status=status,
        amount_cents=683,
        currency="gbp",
        captured=status == "succeeded",
    )


class TestPayoutAccountStatus:
    def test_active_account_without_requirements_is_ready(self):
        account = AccountResult(id="acct_1", transfers_capability="active")

        status = PayoutAccountStatus.from_account(account)

        assert status.ready is True
        assert status.missing_requirements == []

    def test_requirements_due_block_transfers(self):
        account = AccountResult(
            id="acct_1",
            transfers_capability="active",
            currently_due=["external_account"],
        )

        status = PayoutAccountStatus.from_account(account)

        assert status.ready is False
        assert status.missing_requirements == ["external_account"]

    def test_missing_capability_is_reported(self):
        account = AccountResult(id="acct_1", transfers_capability=None)

        status = PayoutAccountStatus.from_account(account)

        assert status.ready is False
        assert status.missing_requirements == ["capabilities.transfers:missing"]


class TestIsPaymentCaptured:
    def test_succeeded_intent_is_captured(self, mock_adapter):
        mock_adapter.retrieve_payment_intent.return_value = payment_intent("succeeded")

        assert StripePayoutGateway.is_payment_captured("pi_test_123") is True
        mock_adapter.retrieve_payment_intent.assert_called_once_with("pi_test_123")

    @pytest.mark.parametrize("status", ["processing", "requires_capture", "canceled"])
    def test_other_statuses_are_not_captured(self, mock_adapter, status):
        mock_adapter.retrieve_payment_intent.return_value = payment_intent(status)

        assert StripePayoutGateway.is_payment_captured("pi_test_123") is False


@pytest.mark.django_db
class TestCheckPayoutAccountReady:
    def test_ready_account_is_recorded_on_merchant(self, mock_adapter):
        merchant = MerchantAccountFactory(payout_account_ready=False)
        mock_adapter.retrieve_account.return_value = AccountResult(
            id=merchant.payout_account_id,
            transfers_capability="active",
        )

        status = StripePayoutGateway.check_payout_account_ready(merchant.id)

        assert status.ready is True
        fresh = MerchantAccount.objects.get(id=merchant.id)
        assert fresh.payout_account_ready is True
        assert fresh.payout_requirements_due == []
        assert fresh.payout_status_checked_at is not None
        assert fresh.version == merchant.version + 1

    def test_unready_account_records_requirements(self, mock_adapter):
        merchant = MerchantAccountFactory()
        mock_adapter.retrieve_account.return_value = AccountResult(
            id=merchant.payout_account_id,
            transfers_capability="inactive",
            currently_due=["external_account"],
        )

        status = StripePayoutGateway.check_payout_account_ready(merchant.id)

        assert status.ready is False
        expected = ["external_account", "capabilities.transfers:inactive"]
        assert status.missing_requirements == expected
        fresh = MerchantAccount.objects.get(id=merchant.id)
        assert fresh.payout_account_ready is False
        assert fresh.payout_requirements_due == expected

    def test_merchant_without_account_is_not_ready(self, mock_adapter):
        """Should not call Stripe for a merchant that never onboarded."""
        merchant = MerchantAccountFactory(payout_account_id=None)

        status = StripePayoutGateway.check_payout_account_ready(merchant.id)

        assert status.ready is False
        assert status.missing_requirements == [NO_PAYOUT_ACCOUNT]
        mock_adapter.retrieve_account.assert_not_called()

    def test_inaccessible_account_is_not_ready(self, mock_adapter):
        merchant = MerchantAccountFactory()
        mock_adapter.retrieve_account.side_effect = StripeInvalidAccountError(
            "No such account: acct_gone"
        )

        status = StripePayoutGateway.check_payout_account_ready(merchant.id)

        assert status.ready is False
        assert status.missing_requirements == [ACCOUNT_UNAVAILABLE]

    def test_transient_error_propagates(self, mock_adapter):
        """Should leave retry decisions to the orchestrator."""
        merchant = MerchantAccountFactory(payout_account_ready=True)
        mock_adapter.retrieve_account.side_effect = StripeAPIUnavailableError("down")

        with pytest.raises(StripeAPIUnavailableError):
            StripePayoutGateway.check_payout_account_ready(merchant.id)

        fresh = MerchantAccount.objects.get(id=merchant.id)
        assert fresh.payout_account_ready is True
        assert fresh.payout_status_checked_at is None

    def test_unknown_merchant_raises(self, mock_adapter):
        with pytest.raises(SettlementNotFoundError):
            StripePayoutGateway.check_payout_account_ready(uuid.uuid4())


class TestTransferFunds:
    def test_delegates_to_adapter(self, mock_adapter):
        expected = TransferResult(
            id="tr_1",
            amount_cents=580,
            currency="gbp",
            destination_account="acct_1",
        )
        mock_adapter.create_transfer.return_value = expected

        result = StripePayoutGateway.transfer_funds(
            "acct_1",
            580,
            "transfer:order:1:abcd1234",
            metadata={"order_id": "order"},
        )

        assert result is expected
        mock_adapter.create_transfer.assert_called_once_with(
            amount_cents=580,
            destination_account="acct_1",
            idempotency_key="transfer:order:1:abcd1234",
            currency="gbp",
            metadata={"order_id": "order"},
        )
