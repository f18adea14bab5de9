"""
Marketplace app configuration.

This app owns the wholesale commerce state driven by payment events:
- Merchant accounts and their subscription tiers
- Buyer records
- Orders, line items and order number sequences
- Fee calculation and order intent parsing
"""

from django.apps import AppConfig


class MarketplaceConfig(AppConfig):
    """Configuration for the marketplace application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "marketplace"
    verbose_name = "Marketplace"
