"""
Pytest fixtures for webhook tests.

Payload builders live in payloads.py; this module provides the merchant,
a customer portal payment event and mocks for everything queued after
commit.
"""

import pytest

from marketplace.tests.factories import MerchantAccountFactory

from .payloads import build_portal_metadata, make_webhook_event


@pytest.fixture
def merchant(db):
    return MerchantAccountFactory(business_name="Acme Wholesale", email="orders@acme.test")


@pytest.fixture
def portal_payment_event(merchant):
    """payment_intent.succeeded for a customer portal order."""
    return make_webhook_event(
        "payment_intent.succeeded",
        {
            "id": "pi_portal_123",
            "object": "payment_intent",
            "amount_received": 683,
            "currency": "gbp",
            "metadata": build_portal_metadata(merchant.id),
        },
    )


@pytest.fixture
def mock_settle_task(mocker):
    return mocker.patch("settlements.tasks.settle_order.apply_async")


@pytest.fixture
def mock_notification_tasks(mocker):
    """Patch the buyer and merchant email tasks queued after an order commits."""
    return {
        "order_confirmation": mocker.patch("notifications.tasks.send_order_confirmation.delay"),
        "merchant_alert": mocker.patch("notifications.tasks.send_merchant_order_alert.delay"),
    }


@pytest.fixture
def mock_process_task(mocker):
    return mocker.patch("settlements.tasks.process_webhook_event.delay")
