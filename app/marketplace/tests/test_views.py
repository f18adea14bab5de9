"""
Tests for the merchant order list endpoint.

Tests cover:
- Staff-only access
- Unknown merchants
- Breakdown, line items and payout status per order
- Pagination
"""

import uuid
from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from marketplace.models import Order
from marketplace.tests.factories import (
    MerchantAccountFactory,
    OrderFactory,
    OrderLineItemFactory,
)
from settlements.state_machines import TransferState
from settlements.tests.factories import TransferRecordFactory


def orders_url(merchant_id) -> str:
    return reverse("marketplace:merchant-orders", kwargs={"merchant_id": merchant_id})


@pytest.fixture
def merchant(db):
    return MerchantAccountFactory(business_name="Acme Wholesale")


@pytest.fixture
def staff_client(client, django_user_model):
    user = django_user_model.objects.create_user(
        username="operator", password="operator-pass", is_staff=True
    )
    client.force_login(user)
    return client


@pytest.mark.django_db
class TestMerchantOrderListAccess:
    def test_url(self, merchant):
        assert orders_url(merchant.id) == f"/api/v1/marketplace/merchants/{merchant.id}/orders/"

    def test_anonymous_is_refused(self, client, merchant):
        response = client.get(orders_url(merchant.id))

        assert response.status_code == 403

    def test_non_staff_is_refused(self, client, django_user_model, merchant):
        user = django_user_model.objects.create_user(username="buyer", password="buyer-pass")
        client.force_login(user)

        response = client.get(orders_url(merchant.id))

        assert response.status_code == 403

    def test_unknown_merchant(self, staff_client):
        response = staff_client.get(orders_url(uuid.uuid4()))

        assert response.status_code == 404

    def test_write_methods_not_allowed(self, staff_client, merchant):
        response = staff_client.post(orders_url(merchant.id), {})

        assert response.status_code == 405


@pytest.mark.django_db
class TestMerchantOrderListContent:
    def test_empty_list(self, staff_client, merchant):
        response = staff_client.get(orders_url(merchant.id))

        assert response.status_code == 200
        assert response.json()["count"] == 0
        assert response.json()["results"] == []

    def test_only_this_merchants_orders(self, staff_client, merchant):
        own_order = OrderFactory(merchant=merchant)
        OrderFactory()

        results = staff_client.get(orders_url(merchant.id)).json()["results"]

        assert [result["id"] for result in results] == [str(own_order.id)]

    def test_breakdown_and_line_items(self, staff_client, merchant):
        order = OrderFactory(merchant=merchant, order_number="ACM-260101-001")
        OrderLineItemFactory(order=order, position=1, product_id="prod_b")
        OrderLineItemFactory(order=order, position=0, product_id="prod_a")

        result = staff_client.get(orders_url(merchant.id)).json()["results"][0]

        assert result["order_number"] == "ACM-260101-001"
        assert result["status"] == "paid"
        assert result["product_subtotal_minor_units"] == 600
        assert result["buyer_service_fee_minor_units"] == 83
        assert result["merchant_service_fee_minor_units"] == 20
        assert result["total_charged_minor_units"] == 683
        assert result["platform_retained_minor_units"] == 103
        assert result["merchant_payout_minor_units"] == 580
        assert [item["product_id"] for item in result["line_items"]] == ["prod_a", "prod_b"]
        assert result["line_items"][0]["line_total_minor_units"] == 600

    def test_newest_first(self, staff_client, merchant):
        first = OrderFactory(merchant=merchant)
        second = OrderFactory(merchant=merchant)
        Order.objects.filter(id=first.id).update(created_at=timezone.now() - timedelta(hours=1))

        results = staff_client.get(orders_url(merchant.id)).json()["results"]

        assert [result["id"] for result in results] == [str(second.id), str(first.id)]

    def test_payout_pending_without_record(self, staff_client, merchant):
        OrderFactory(merchant=merchant)

        result = staff_client.get(orders_url(merchant.id)).json()["results"][0]

        assert result["payout_status"] == "pending"
        assert result["payout_error"] is None

    @pytest.mark.parametrize(
        ("state", "payout_status"),
        [
            (TransferState.PENDING, "pending"),
            (TransferState.SUCCEEDED, "paid_out"),
            (TransferState.FAILED_RETRYABLE, "retrying"),
            (TransferState.FAILED_PERMANENT, "failed"),
        ],
    )
    def test_payout_status(self, staff_client, merchant, state, payout_status):
        TransferRecordFactory(order=OrderFactory(merchant=merchant), state=state)

        result = staff_client.get(orders_url(merchant.id)).json()["results"][0]

        assert result["payout_status"] == payout_status

    def test_payout_error_is_shown(self, staff_client, merchant):
        TransferRecordFactory(
            order=OrderFactory(merchant=merchant),
            state=TransferState.FAILED_PERMANENT,
            last_error="No such destination: 'acct_gone'",
        )

        result = staff_client.get(orders_url(merchant.id)).json()["results"][0]

        assert result["payout_status"] == "failed"
        assert result["payout_error"] == "No such destination: 'acct_gone'"

    def test_paginated(self, staff_client, merchant):
        OrderFactory.create_batch(25, merchant=merchant)

        first_page = staff_client.get(orders_url(merchant.id)).json()
        second_page = staff_client.get(orders_url(merchant.id), {"page": 2}).json()

        assert first_page["count"] == 25
        assert len(first_page["results"]) == 20
        assert first_page["next"] is not None
        assert len(second_page["results"]) == 5
        assert second_page["next"] is None
