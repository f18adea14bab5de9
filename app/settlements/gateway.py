"""
Payout gateway: the Stripe-facing collaborator of the transfer orchestrator.

The orchestrator only talks to an object with these three operations, which
lets tests swap in a fake:

    is_payment_captured(external_object_id) -> bool
    check_payout_account_ready(merchant_id) -> PayoutAccountStatus
    transfer_funds(destination_account_id, amount_minor_units,
                   idempotency_key, currency="gbp", metadata=None) -> TransferResult

check_payout_account_ready always asks Stripe and writes what it finds back
onto the MerchantAccount, so the stored flag is never older than the last
settlement attempt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from django.db.models import F
from django.utils import timezone

from core.services import BaseService

from marketplace.models import MerchantAccount
from settlements.adapters import AccountResult, StripeAdapter
from settlements.exceptions import SettlementNotFoundError, StripeInvalidAccountError

if TYPE_CHECKING:
    from settlements.adapters import TransferResult

NO_PAYOUT_ACCOUNT = "payout_account_id"
ACCOUNT_UNAVAILABLE = "account_unavailable"


@dataclass(frozen=True)
class PayoutAccountStatus:
    """Whether a merchant can receive transfers, and what blocks it if not."""

    ready: bool
    missing_requirements: list[str] = field(default_factory=list)

    @classmethod
    def from_account(cls, account: AccountResult) -> PayoutAccountStatus:
        if account.can_receive_transfers:
            return cls(ready=True)
        return cls(ready=False, missing_requirements=account.missing_requirements)


class StripePayoutGateway(BaseService):
    """
    Stripe implementation of the payout gateway.

    The adapter can be injected for testing, the same way services swap the
    Stripe adapter.
    """

    _stripe_adapter: type | None = None

    @classmethod
    def get_stripe_adapter(cls) -> type:
        return cls._stripe_adapter or StripeAdapter

    @classmethod
    def set_stripe_adapter(cls, adapter: type | None) -> None:
        cls._stripe_adapter = adapter

    # =========================================================================
    # Gateway Operations
    # =========================================================================

    @classmethod
    def is_payment_captured(cls, external_object_id: str) -> bool:
        """Fetch the PaymentIntent fresh and check it has succeeded."""
        intent = cls.get_stripe_adapter().retrieve_payment_intent(external_object_id)
        return intent.succeeded

    @classmethod
    def check_payout_account_ready(cls, merchant_id) -> PayoutAccountStatus:
        """
        Live readiness check of the merchant's Connect account.

        A merchant with no Connect account, or whose account Stripe no
        longer recognises, is reported as not ready rather than raising.

        Raises:
            SettlementNotFoundError: no such merchant
            StripeError: transient Stripe failures, for the caller to retry
        """
        merchant = MerchantAccount.objects.filter(id=merchant_id).first()
        if merchant is None:
            raise SettlementNotFoundError(
                f"Merchant {merchant_id} not found",
                details={"merchant_id": str(merchant_id)},
            )

        if not merchant.payout_account_id:
            status = PayoutAccountStatus(ready=False, missing_requirements=[NO_PAYOUT_ACCOUNT])
        else:
            try:
                account = cls.get_stripe_adapter().retrieve_account(merchant.payout_account_id)
            except StripeInvalidAccountError as e:
                cls.get_logger().warning(
                    f"Payout account {merchant.payout_account_id} is not accessible",
                    extra={"merchant_id": str(merchant.id), "error": e.message},
                )
                status = PayoutAccountStatus(ready=False, missing_requirements=[ACCOUNT_UNAVAILABLE])
            else:
                status = PayoutAccountStatus.from_account(account)

        cls.record_account_status(merchant.id, status)
        return status

    @classmethod
    def transfer_funds(
        cls,
        destination_account_id: str,
        amount_minor_units: int,
        idempotency_key: str,
        currency: str = "gbp",
        metadata: dict[str, str] | None = None,
    ) -> TransferResult:
        """
        Move funds from the platform balance to a Connect account.

        Raises:
            StripeError: with is_retryable telling transient from permanent
        """
        return cls.get_stripe_adapter().create_transfer(
            amount_cents=amount_minor_units,
            destination_account=destination_account_id,
            idempotency_key=idempotency_key,
            currency=currency,
            metadata=metadata,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def record_account_status(cls, merchant_id, status: PayoutAccountStatus) -> None:
        """Write a readiness result onto the merchant."""
        MerchantAccount.objects.filter(id=merchant_id).update(
            payout_account_ready=status.ready,
            payout_requirements_due=list(status.missing_requirements),
            payout_status_checked_at=timezone.now(),
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        cls.get_logger().info(
            f"Payout account for merchant {merchant_id} is {'ready' if status.ready else 'not ready'}",
            extra={
                "merchant_id": str(merchant_id),
                "ready": status.ready,
                "missing_requirements": list(status.missing_requirements),
            },
        )
