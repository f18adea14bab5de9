"""
DRF views for the marketplace app.

Endpoints:
    GET /api/v1/marketplace/merchants/{merchant_id}/orders/ - Merchant orders
        with breakdown and payout status (staff only)
"""

from __future__ import annotations

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import generics
from rest_framework.permissions import IsAdminUser

from marketplace.models import MerchantAccount, Order
from marketplace.serializers import MerchantOrderSerializer


@extend_schema(
    summary="List a merchant's orders",
    description=(
        "Paginated orders for one merchant, newest first, with the price "
        "breakdown and the settlement status of each order."
    ),
    tags=["Marketplace"],
)
class MerchantOrderListView(generics.ListAPIView):
    serializer_class = MerchantOrderSerializer
    permission_classes = [IsAdminUser]

    def get_queryset(self):
        merchant = get_object_or_404(MerchantAccount, id=self.kwargs["merchant_id"])
        return (
            Order.objects.filter(merchant=merchant)
            .select_related("transfer_record")
            .prefetch_related("line_items")
            .order_by("-created_at")
        )
