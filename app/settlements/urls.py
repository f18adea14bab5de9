"""
URL configuration for the settlements app.

Routes:
    - POST /webhooks/payments/ - Stripe webhook endpoint

Usage:
    # In config/urls.py
    path("webhooks/", include("settlements.urls")),
"""

from django.urls import path

from settlements.webhooks.views import payments_webhook

app_name = "settlements"

urlpatterns = [
    path("payments/", payments_webhook, name="payments"),
]
