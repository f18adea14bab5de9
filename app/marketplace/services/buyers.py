"""
Buyer upsert from checkout details.

Buyers are keyed on phone, or on email when the checkout supplied no phone.
An existing buyer only has blank fields filled in. A value that belongs to
someone else (typically an email already on another buyer) is never moved or
merged: the existing record keeps what it has and a warning is logged.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction

from core.services import BaseService

from marketplace.models import Buyer

if TYPE_CHECKING:
    from marketplace.intents import BuyerDetails

FILLABLE_FIELDS = (
    "first_name",
    "last_name",
    "address_line",
    "city",
    "region",
    "postal_code",
    "country",
)


class BuyerRegistry(BaseService):
    """Race-safe buyer upsert with no silent overwrites."""

    @classmethod
    def upsert(cls, details: BuyerDetails) -> Buyer:
        """
        Find or create the buyer for a checkout.

        Must run inside a transaction. Creation goes through get_or_create on
        a unique column, so concurrent checkouts converge on one row.
        """
        if details.phone:
            buyer, created = cls._get_or_create_by_phone(details)
        else:
            buyer, created = Buyer.objects.get_or_create(
                email=details.email,
                defaults=cls._profile_fields(details),
            )

        if created:
            cls.get_logger().info(
                f"Created buyer {buyer.id}",
                extra={"buyer_id": str(buyer.id), "keyed_on": "phone" if details.phone else "email"},
            )
        else:
            cls._fill_blanks(buyer, details)
        return buyer

    @classmethod
    def _get_or_create_by_phone(cls, details: BuyerDetails) -> tuple[Buyer, bool]:
        defaults = cls._profile_fields(details)
        if details.email and not cls._email_taken(details.email):
            defaults["email"] = details.email
        elif details.email:
            cls._warn_email_conflict(details.email, phone=details.phone)

        try:
            return Buyer.objects.get_or_create(phone=details.phone, defaults=defaults)
        except IntegrityError:
            # Email was claimed by another buyer after the check above
            if "email" not in defaults:
                raise
            defaults.pop("email")
            cls._warn_email_conflict(details.email, phone=details.phone)
            return Buyer.objects.get_or_create(phone=details.phone, defaults=defaults)

    @classmethod
    def _fill_blanks(cls, buyer: Buyer, details: BuyerDetails) -> None:
        changed = []
        for field_name in FILLABLE_FIELDS:
            supplied = getattr(details, field_name)
            if supplied and not getattr(buyer, field_name):
                setattr(buyer, field_name, supplied)
                changed.append(field_name)

        if details.email and buyer.email and buyer.email != details.email:
            cls.get_logger().warning(
                f"Buyer {buyer.id} checked out with a different email; keeping the stored one",
                extra={"buyer_id": str(buyer.id)},
            )
        if details.phone and buyer.phone and buyer.phone != details.phone:
            cls.get_logger().warning(
                f"Buyer {buyer.id} checked out with a different phone; keeping the stored one",
                extra={"buyer_id": str(buyer.id)},
            )

        if changed:
            buyer.save(update_fields=[*changed, "updated_at"])

        if details.email and not buyer.email:
            if cls._email_taken(details.email):
                cls._warn_email_conflict(details.email, phone=buyer.phone)
                return
            buyer.email = details.email
            try:
                with transaction.atomic():
                    buyer.save(update_fields=["email", "updated_at"])
            except IntegrityError:
                buyer.email = None
                cls._warn_email_conflict(details.email, phone=buyer.phone)

    @staticmethod
    def _profile_fields(details: BuyerDetails) -> dict:
        return {field_name: getattr(details, field_name) for field_name in FILLABLE_FIELDS}

    @staticmethod
    def _email_taken(email: str) -> bool:
        return Buyer.objects.filter(email=email).exists()

    @classmethod
    def _warn_email_conflict(cls, email: str, phone: str | None) -> None:
        cls.get_logger().warning(
            "Checkout email belongs to another buyer; not linking it",
            extra={"phone_suffix": (phone or "")[-4:], "email_domain": email.partition("@")[2]},
        )
