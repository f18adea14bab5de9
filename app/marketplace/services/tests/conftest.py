"""
Shared fixtures for marketplace service tests.
"""

import pytest

from marketplace.intents import BuyerDetails, LineItemIntent, OrderIntent
from marketplace.tests.factories import MerchantAccountFactory


def make_buyer_details(**overrides) -> BuyerDetails:
    fields = {
        "name": "Ada Lovelace",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "phone": "+447700900123",
        "address_line": "1 Analytical Way",
        "city": "London",
        "postal_code": "N1 1AA",
        "country": "GB",
    }
    fields.update(overrides)
    return BuyerDetails(**fields)


def make_order_intent(merchant_id, **overrides) -> OrderIntent:
    fields = {
        "merchant_id": str(merchant_id),
        "buyer": make_buyer_details(),
        "line_items": (
            LineItemIntent(
                product_id="prod_oat",
                quantity=2,
                unit_price_minor_units=300,
                product_name="Oat milk 1L",
            ),
        ),
    }
    fields.update(overrides)
    return OrderIntent(**fields)


@pytest.fixture
def merchant(db):
    return MerchantAccountFactory(business_name="Acme Wholesale", email="orders@acme.test")


@pytest.fixture
def mock_notification_tasks(mocker):
    return {
        "order_confirmation": mocker.patch(
            "notifications.tasks.send_order_confirmation.delay"
        ),
        "merchant_alert": mocker.patch("notifications.tasks.send_merchant_order_alert.delay"),
    }
