"""
Buyer model: the customer record behind marketplace orders.

Buyers are upserted by the OrderMaterializer keyed on phone (email when no
phone is given). Both keys are unique so concurrent upserts converge on one
row, and neither is ever overwritten with another buyer's value.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class Buyer(UUIDPrimaryKeyMixin, BaseModel):
    """
    A retail customer who has placed at least one order.

    Fields:
        phone: Normalized phone number (unique, nullable)
        email: Lower-cased email (unique, nullable)
        first_name / last_name: Split from the checkout name
        address_line, city, region, postal_code, country: Last known address
    """

    phone = models.CharField(
        max_length=32,
        null=True,
        blank=True,
        unique=True,
        help_text="Normalized phone number, primary upsert key",
    )

    email = models.EmailField(
        null=True,
        blank=True,
        unique=True,
        help_text="Lower-cased email, upsert key when no phone is supplied",
    )

    first_name = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Given name",
    )

    last_name = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Family name (everything after the first word)",
    )

    address_line = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Street address",
    )

    city = models.CharField(max_length=100, blank=True, default="", help_text="City")

    region = models.CharField(
        max_length=100, blank=True, default="", help_text="State, county or region"
    )

    postal_code = models.CharField(
        max_length=20, blank=True, default="", help_text="Postal code"
    )

    country = models.CharField(
        max_length=2, blank=True, default="", help_text="ISO 3166-1 alpha-2 country"
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Buyer"
        verbose_name_plural = "Buyers"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(phone__isnull=False) | models.Q(email__isnull=False),
                name="buyer_has_contact_key",
            ),
        ]

    def __str__(self) -> str:
        return f"Buyer({self.full_name or self.id})"

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)
