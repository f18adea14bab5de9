"""
DRF serializers for the marketplace app.

Related files:
    - views.py: MerchantOrderListView
    - models/order.py: Order, OrderLineItem
"""

from __future__ import annotations

from rest_framework import serializers

from marketplace.models import Order, OrderLineItem
from settlements.state_machines import TransferState

PAYOUT_STATUS_BY_TRANSFER_STATE = {
    TransferState.PENDING: "pending",
    TransferState.SUCCEEDED: "paid_out",
    TransferState.FAILED_RETRYABLE: "retrying",
    TransferState.FAILED_PERMANENT: "failed",
}


class OrderLineItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderLineItem
        fields = [
            "position",
            "product_id",
            "product_name",
            "quantity",
            "unit_price_minor_units",
            "line_total_minor_units",
        ]
        read_only_fields = fields


class MerchantOrderSerializer(serializers.ModelSerializer):
    """
    Order as shown to operators looking at one merchant.

    payout_status keeps "payout pending" and "payout failed" apart:
        pending   transfer not attempted yet (or no record)
        paid_out  transfer succeeded
        retrying  last attempt failed, another is scheduled
        failed    permanently failed, operators alerted
    """

    line_items = OrderLineItemSerializer(many=True, read_only=True)
    payout_status = serializers.SerializerMethodField()
    payout_error = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "external_object_id",
            "status",
            "currency",
            "product_subtotal_minor_units",
            "delivery_fee_minor_units",
            "buyer_service_fee_minor_units",
            "merchant_service_fee_minor_units",
            "total_charged_minor_units",
            "platform_retained_minor_units",
            "merchant_payout_minor_units",
            "fulfillment_type",
            "delivery_carrier",
            "buyer_name",
            "buyer_email",
            "buyer_phone",
            "paid_at",
            "created_at",
            "line_items",
            "payout_status",
            "payout_error",
        ]
        read_only_fields = fields

    def get_payout_status(self, obj: Order) -> str:
        record = getattr(obj, "transfer_record", None)
        if record is None:
            return "pending"
        return PAYOUT_STATUS_BY_TRANSFER_STATE.get(record.state, "pending")

    def get_payout_error(self, obj: Order) -> str | None:
        record = getattr(obj, "transfer_record", None)
        if record is None:
            return None
        return record.last_error or None
