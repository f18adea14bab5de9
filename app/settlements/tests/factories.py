"""
Factory Boy factories for settlement test data.

Usage:
    from settlements.tests.factories import TransferRecordFactory, WebhookEventFactory

    record = TransferRecordFactory()
    record = TransferRecordFactory(state=TransferState.FAILED_PERMANENT)
"""

import uuid

import factory

from marketplace.tests.factories import OrderFactory
from settlements.models import TransferRecord, WebhookEvent
from settlements.state_machines import TransferState, WebhookEventStatus


class TransferRecordFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating TransferRecord instances.

    Default creates a PENDING record for a fresh paid order, carrying the
    order's merchant payout.
    """

    class Meta:
        model = TransferRecord
        skip_postgeneration_save = True

    order = factory.SubFactory(OrderFactory)
    merchant = factory.LazyAttribute(lambda o: o.order.merchant)
    amount_minor_units = factory.LazyAttribute(lambda o: o.order.merchant_payout_minor_units)
    currency = "gbp"
    # Only set at creation; later changes go through the FSM transitions
    state = TransferState.PENDING
    idempotency_key = factory.LazyAttribute(lambda o: f"transfer:{o.order.id}:1:test")


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating WebhookEvent instances.

    Default creates a PENDING payment_intent.succeeded webhook with no
    metadata, which the handler ignores.

    Example:
        event = WebhookEventFactory(
            event_type="account.updated",
            payload={"data": {"object": {...}}},
        )
    """

    class Meta:
        model = WebhookEvent
        skip_postgeneration_save = True

    stripe_event_id = factory.Sequence(lambda n: f"evt_test_{n}_{uuid.uuid4().hex[:8]}")
    event_type = "payment_intent.succeeded"
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.stripe_event_id,
            "type": o.event_type,
            "data": {"object": {"id": f"pi_{uuid.uuid4().hex[:12]}", "metadata": {}}},
        }
    )
    status = WebhookEventStatus.PENDING
    retry_count = 0
