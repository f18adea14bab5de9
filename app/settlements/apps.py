"""
Settlements app configuration.

This app moves money and processes Stripe events:
- Stripe adapter and payout gateway
- Webhook ingestion and the event handler registry
- Transfer records and the transfer orchestrator
- Periodic retry and cleanup sweeps
"""

from django.apps import AppConfig


class SettlementsConfig(AppConfig):
    """Configuration for the settlements application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "settlements"
    verbose_name = "Settlements"
