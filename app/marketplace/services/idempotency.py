"""
Idempotency guard for payment-driven order creation.

One logical payment (a Stripe PaymentIntent) produces at most one Order.
Mutual exclusion comes only from the unique constraint on
Order.external_object_id: two workers racing on the same payment both try to
insert, and the loser's IntegrityError is translated into AlreadyHandled.
No application lock is involved.

Usage:
    decision = IdempotencyGuard.reserve(payment_intent_id)
    if isinstance(decision, AlreadyHandled):
        return decision

    with IdempotencyGuard.claim(payment_intent_id):
        Order.objects.create(external_object_id=payment_intent_id, ...)
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.services import BaseService

from marketplace.exceptions import DuplicatePaymentError
from marketplace.models import Order

if TYPE_CHECKING:
    import uuid
    from collections.abc import Generator


@dataclass(frozen=True)
class Proceed:
    """No order exists yet for this payment."""

    external_object_id: str


@dataclass(frozen=True)
class AlreadyHandled:
    """An order already exists for this payment."""

    external_object_id: str
    order_id: uuid.UUID | None = None


class IdempotencyGuard(BaseService):
    """Check and record whether an external payment already produced an order."""

    @classmethod
    def reserve(cls, external_object_id: str) -> Proceed | AlreadyHandled:
        """
        Cheap pre-check before doing any work.

        A Proceed here is advisory; claim() is what actually decides.
        """
        order_id = cls._existing_order_id(external_object_id)
        if order_id is not None:
            return AlreadyHandled(external_object_id, order_id)
        return Proceed(external_object_id)

    @classmethod
    @contextmanager
    def claim(cls, external_object_id: str) -> Generator[None, None, None]:
        """
        Wrap the order insert in a savepoint.

        Raises:
            DuplicatePaymentError: another worker created the order first
            IntegrityError: any other constraint failed (the savepoint is
                rolled back, so the caller's transaction is still usable)
        """
        try:
            with transaction.atomic():
                yield
        except IntegrityError as exc:
            order_id = cls._existing_order_id(external_object_id)
            if order_id is None:
                raise
            cls.get_logger().info(
                f"Payment {external_object_id} already produced order {order_id}",
                extra={"external_object_id": external_object_id, "order_id": str(order_id)},
            )
            raise DuplicatePaymentError(
                f"Payment {external_object_id} was already handled",
                details={"external_object_id": external_object_id, "order_id": str(order_id)},
                decision=AlreadyHandled(external_object_id, order_id),
            ) from exc

    @staticmethod
    def _existing_order_id(external_object_id: str):
        return (
            Order.objects.filter(external_object_id=external_object_id)
            .values_list("id", flat=True)
            .first()
        )
