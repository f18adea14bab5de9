"""
Tests for the Stripe adapter.

Tests cover:
- Idempotency key generation
- Helper functions (is_retryable, backoff_delay)
- Account readiness parsing
- Successful API operations
- Error translation for each exception type
- Webhook signature verification
"""

import uuid

import pytest
import stripe
from django.test import override_settings

from settlements.adapters import (
    AccountResult,
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    StripeAdapter,
    TransferResult,
    backoff_delay,
    is_retryable_stripe_error,
)
from settlements.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


# =============================================================================
# IdempotencyKeyGenerator Tests
# =============================================================================


class TestIdempotencyKeyGenerator:
    def test_generate_key_format(self):
        order_id = uuid.uuid4()

        key = IdempotencyKeyGenerator.generate(operation="transfer", entity_id=order_id)

        parts = key.split(":")
        assert len(parts) == 4
        assert parts[0] == "transfer"
        assert parts[1] == str(order_id)
        assert parts[2] == "1"
        assert len(parts[3]) == 8

    def test_same_inputs_produce_same_key(self):
        """Retries of one settlement reuse the key, so Stripe pays once."""
        order_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate("transfer", order_id) == (
            IdempotencyKeyGenerator.generate("transfer", str(order_id))
        )

    def test_different_orders_produce_different_keys(self):
        assert IdempotencyKeyGenerator.generate("transfer", uuid.uuid4()) != (
            IdempotencyKeyGenerator.generate("transfer", uuid.uuid4())
        )

    def test_different_attempts_produce_different_keys(self):
        order_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate("transfer", order_id, attempt=1) != (
            IdempotencyKeyGenerator.generate("transfer", order_id, attempt=2)
        )

    def test_hash_depends_on_secret_key(self):
        order_id = uuid.uuid4()

        with override_settings(SECRET_KEY="first-secret"):
            first = IdempotencyKeyGenerator.generate("transfer", order_id)
        with override_settings(SECRET_KEY="second-secret"):
            second = IdempotencyKeyGenerator.generate("transfer", order_id)

        assert first != second


# =============================================================================
# Helper Function Tests
# =============================================================================


class TestIsRetryableStripeError:
    @pytest.mark.parametrize(
        "error_class",
        [StripeRateLimitError, StripeAPIUnavailableError, StripeTimeoutError],
    )
    def test_retryable_errors(self, error_class):
        assert is_retryable_stripe_error(error_class("transient")) is True

    @pytest.mark.parametrize(
        "error_class",
        [
            StripeCardDeclinedError,
            StripeInsufficientFundsError,
            StripeInvalidAccountError,
            StripeInvalidRequestError,
        ],
    )
    def test_permanent_errors(self, error_class):
        assert is_retryable_stripe_error(error_class("permanent")) is False

    def test_non_stripe_errors(self):
        assert is_retryable_stripe_error(ValueError("test")) is False
        assert is_retryable_stripe_error(RuntimeError("test")) is False


class TestBackoffDelay:
    def test_exponential_growth(self):
        assert 1.0 <= backoff_delay(0) <= 1.25
        assert 2.0 <= backoff_delay(1) <= 2.5
        assert 4.0 <= backoff_delay(2) <= 5.0

    def test_respects_max_delay(self):
        delay = backoff_delay(10, max_delay=60.0)

        assert 60.0 <= delay <= 75.0

    def test_custom_base(self):
        assert 2.0 <= backoff_delay(0, base=2.0) <= 2.5

    def test_jitter_stays_within_bounds(self):
        for delay in (backoff_delay(3) for _ in range(20)):
            assert 8.0 <= delay <= 10.0


# =============================================================================
# Result Type Tests
# =============================================================================


class TestAccountResult:
    def test_active_account_without_requirements_can_receive(self):
        account = AccountResult.from_dict(
            {
                "id": "acct_ok",
                "capabilities": {"transfers": "active"},
                "requirements": {"currently_due": []},
            }
        )

        assert account.can_receive_transfers
        assert account.missing_requirements == []

    def test_outstanding_requirements_block_transfers(self):
        account = AccountResult.from_dict(
            {
                "id": "acct_due",
                "capabilities": {"transfers": "active"},
                "requirements": {
                    "currently_due": ["external_account", "tos_acceptance.date"],
                    "disabled_reason": "requirements.past_due",
                },
            }
        )

        assert not account.can_receive_transfers
        assert account.missing_requirements == ["external_account", "tos_acceptance.date"]
        assert account.disabled_reason == "requirements.past_due"

    @pytest.mark.parametrize(
        ("capabilities", "expected"),
        [
            ({"transfers": "inactive"}, "capabilities.transfers:inactive"),
            ({"transfers": "pending"}, "capabilities.transfers:pending"),
            ({}, "capabilities.transfers:missing"),
            (None, "capabilities.transfers:missing"),
        ],
    )
    def test_inactive_capability_is_a_missing_requirement(self, capabilities, expected):
        account = AccountResult.from_dict({"id": "acct_cap", "capabilities": capabilities})

        assert not account.can_receive_transfers
        assert account.missing_requirements == [expected]

    def test_from_empty_dict(self):
        account = AccountResult.from_dict({})

        assert account.id == ""
        assert account.transfers_capability is None
        assert not account.can_receive_transfers


class TestPaymentIntentResult:
    def test_succeeded(self):
        assert PaymentIntentResult("pi_1", "succeeded", 683, "gbp").succeeded
        assert not PaymentIntentResult("pi_1", "processing", 683, "gbp").succeeded


# =============================================================================
# StripeAdapter Operation Tests
# =============================================================================


class TestRetrievePaymentIntent:
    @pytest.fixture(autouse=True)
    def setup_mocks(self, mock_stripe_http_client):
        pass

    def test_returns_payment_intent_result(self, mock_stripe_payment_intent):
        result = StripeAdapter.retrieve_payment_intent("pi_test123456")

        mock_stripe_payment_intent.retrieve.assert_called_once_with("pi_test123456")
        assert isinstance(result, PaymentIntentResult)
        assert result.id == "pi_test123456"
        assert result.status == "succeeded"
        assert result.amount_cents == 683
        assert result.currency == "gbp"
        assert result.captured is True
        assert result.raw_response["object"] == "payment_intent"

    def test_not_captured_without_amount_received(
        self, mock_stripe_payment_intent, mock_payment_intent
    ):
        mock_stripe_payment_intent.retrieve.return_value = mock_payment_intent(
            status="requires_capture", amount_received=0
        )

        result = StripeAdapter.retrieve_payment_intent("pi_test123456")

        assert result.captured is False
        assert result.succeeded is False

    @override_settings(STRIPE_API_TIMEOUT_SECONDS=3)
    def test_configures_timeout(self, mock_stripe_payment_intent, mock_stripe_http_client):
        StripeAdapter.retrieve_payment_intent("pi_test123456")

        mock_stripe_http_client.assert_called_with(timeout=3)

    def test_missing_intent_raises_invalid_request(
        self, mock_stripe_payment_intent, invalid_request_error
    ):
        mock_stripe_payment_intent.retrieve.side_effect = invalid_request_error()

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.retrieve_payment_intent("pi_missing")

        assert exc_info.value.stripe_code == "resource_missing"
        assert exc_info.value.is_retryable is False


class TestRetrieveAccount:
    @pytest.fixture(autouse=True)
    def setup_mocks(self, mock_stripe_http_client):
        pass

    def test_returns_account_result(self, mock_stripe_account):
        result = StripeAdapter.retrieve_account("acct_test123456")

        mock_stripe_account.retrieve.assert_called_once_with("acct_test123456")
        assert isinstance(result, AccountResult)
        assert result.id == "acct_test123456"
        assert result.transfers_capability == "active"
        assert result.can_receive_transfers

    def test_account_with_requirements(self, mock_stripe_account, mock_account):
        mock_stripe_account.retrieve.return_value = mock_account(
            transfers="inactive", currently_due=["external_account"]
        )

        result = StripeAdapter.retrieve_account("acct_test123456")

        assert not result.can_receive_transfers
        assert result.missing_requirements == [
            "external_account",
            "capabilities.transfers:inactive",
        ]

    def test_unknown_account_raises_invalid_account(
        self, mock_stripe_account, invalid_request_error
    ):
        mock_stripe_account.retrieve.side_effect = invalid_request_error(
            message="No such account: 'acct_gone'"
        )

        with pytest.raises(StripeInvalidAccountError):
            StripeAdapter.retrieve_account("acct_gone")


class TestCreateTransfer:
    @pytest.fixture(autouse=True)
    def setup_mocks(self, mock_stripe_http_client):
        pass

    def test_creates_transfer_with_idempotency_key(self, mock_stripe_transfer):
        result = StripeAdapter.create_transfer(
            amount_cents=580,
            destination_account="acct_dest123",
            idempotency_key="transfer:order-1:1:abcd1234",
            currency="gbp",
            metadata={"order_id": "order-1"},
        )

        mock_stripe_transfer.create.assert_called_once_with(
            idempotency_key="transfer:order-1:1:abcd1234",
            amount=580,
            currency="gbp",
            destination="acct_dest123",
            metadata={"order_id": "order-1"},
        )
        assert isinstance(result, TransferResult)
        assert result.id == "tr_test123456"
        assert result.amount_cents == 580
        assert result.destination_account == "acct_dest123"

    def test_metadata_defaults_to_empty(self, mock_stripe_transfer):
        StripeAdapter.create_transfer(580, "acct_dest123", "key-1")

        kwargs = mock_stripe_transfer.create.call_args.kwargs
        assert kwargs["metadata"] == {}
        assert kwargs["currency"] == "gbp"


# =============================================================================
# StripeAdapter Error Translation Tests
# =============================================================================


class TestStripeAdapterErrorTranslation:
    @pytest.fixture(autouse=True)
    def setup_mocks(self, mock_stripe_http_client):
        pass

    def transfer(self):
        return StripeAdapter.create_transfer(580, "acct_dest123", "key-1")

    def test_card_declined_error(self, mock_stripe_transfer, card_error):
        mock_stripe_transfer.create.side_effect = card_error()

        with pytest.raises(StripeCardDeclinedError) as exc_info:
            self.transfer()

        assert exc_info.value.decline_code == "generic_decline"
        assert exc_info.value.is_retryable is False

    def test_insufficient_funds_decline(self, mock_stripe_transfer, card_error):
        mock_stripe_transfer.create.side_effect = card_error(decline_code="insufficient_funds")

        with pytest.raises(StripeInsufficientFundsError) as exc_info:
            self.transfer()

        assert exc_info.value.decline_code == "insufficient_funds"

    def test_platform_balance_insufficient(self, mock_stripe_transfer, invalid_request_error):
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="Insufficient funds in Stripe balance.",
            param=None,
            code="balance_insufficient",
        )

        with pytest.raises(StripeInsufficientFundsError) as exc_info:
            self.transfer()

        assert exc_info.value.stripe_code == "balance_insufficient"
        assert exc_info.value.is_retryable is False

    def test_invalid_destination_account(self, mock_stripe_transfer, invalid_request_error):
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="No such destination account: 'acct_dest123'",
            param="destination",
        )

        with pytest.raises(StripeInvalidAccountError) as exc_info:
            self.transfer()

        assert exc_info.value.is_retryable is False

    def test_invalid_request(self, mock_stripe_transfer, invalid_request_error):
        mock_stripe_transfer.create.side_effect = invalid_request_error(
            message="Amount must be at least 1", param="amount", code="parameter_invalid_integer"
        )

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            self.transfer()

        assert exc_info.value.stripe_code == "parameter_invalid_integer"

    def test_rate_limit_error(self, mock_stripe_transfer, rate_limit_error):
        mock_stripe_transfer.create.side_effect = rate_limit_error

        with pytest.raises(StripeRateLimitError) as exc_info:
            self.transfer()

        assert exc_info.value.is_retryable is True

    def test_connection_error(self, mock_stripe_transfer, api_connection_error):
        mock_stripe_transfer.create.side_effect = api_connection_error

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            self.transfer()

        assert exc_info.value.stripe_code == "api_connection_error"
        assert exc_info.value.is_retryable is True

    def test_timeout_error(self, mock_stripe_transfer):
        mock_stripe_transfer.create.side_effect = stripe.APIConnectionError(
            "Request to Stripe timed out"
        )

        with pytest.raises(StripeTimeoutError) as exc_info:
            self.transfer()

        assert exc_info.value.is_retryable is True

    def test_api_error(self, mock_stripe_transfer, api_error):
        mock_stripe_transfer.create.side_effect = api_error

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            self.transfer()

        assert exc_info.value.stripe_code == "api_error"

    def test_authentication_error_is_permanent(self, mock_stripe_transfer, authentication_error):
        mock_stripe_transfer.create.side_effect = authentication_error

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            self.transfer()

        assert exc_info.value.stripe_code == "authentication_error"
        assert exc_info.value.is_retryable is False

    def test_unexpected_error(self, mock_stripe_transfer):
        mock_stripe_transfer.create.side_effect = RuntimeError("socket closed")

        with pytest.raises(StripeAPIUnavailableError) as exc_info:
            self.transfer()

        assert exc_info.value.stripe_code == "unknown_error"
        assert exc_info.value.is_retryable is True


# =============================================================================
# Webhook Signature Tests
# =============================================================================


class TestVerifyWebhookSignature:
    @override_settings(STRIPE_WEBHOOK_SECRET="whsec_test")
    def test_returns_event_dict(self, mock_stripe_webhook):
        event = StripeAdapter.verify_webhook_signature(b'{"id": "evt_test123"}', "t=1,v1=sig")

        mock_stripe_webhook.construct_event.assert_called_once_with(
            b'{"id": "evt_test123"}', "t=1,v1=sig", "whsec_test"
        )
        assert event["id"] == "evt_test123"
        assert event["type"] == "payment_intent.succeeded"

    def test_bad_signature(self, mock_stripe_webhook, signature_verification_error):
        mock_stripe_webhook.construct_event.side_effect = signature_verification_error

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.verify_webhook_signature(b"{}", "bad_signature")

        assert exc_info.value.stripe_code == "signature_verification_failed"

    def test_malformed_payload(self, mock_stripe_webhook):
        mock_stripe_webhook.construct_event.side_effect = ValueError("Invalid JSON")

        with pytest.raises(StripeInvalidRequestError) as exc_info:
            StripeAdapter.verify_webhook_signature(b"not json", "t=1,v1=sig")

        assert exc_info.value.stripe_code == "invalid_payload"
