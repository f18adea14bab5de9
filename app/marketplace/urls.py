"""
URL configuration for the marketplace app.

Routes (prefixed with /api/v1/marketplace/):
    - GET merchants/<uuid:merchant_id>/orders/ - Merchant order list
"""

from django.urls import path

from marketplace.views import MerchantOrderListView

app_name = "marketplace"

urlpatterns = [
    path(
        "merchants/<uuid:merchant_id>/orders/",
        MerchantOrderListView.as_view(),
        name="merchant-orders",
    ),
]
