"""
Order number allocation.

Order numbers look like ``SUR-250314-007``: a three letter prefix from the
merchant's business name, the UTC day, and a per-merchant-per-day counter.
The counter row is locked with SELECT ... FOR UPDATE, so numbers handed out
inside committed transactions never repeat.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService

from marketplace.models import OrderNumberSequence

if TYPE_CHECKING:
    from datetime import date

    from marketplace.models import MerchantAccount


def format_order_number(prefix: str, day: date, suffix: int | str) -> str:
    if isinstance(suffix, int):
        suffix = f"{suffix:03d}"
    return f"{prefix}-{day:%y%m%d}-{suffix}"


class OrderNumberAllocator(BaseService):
    """Hands out human-readable order numbers."""

    @classmethod
    def next_number(cls, merchant: MerchantAccount, day: date | None = None) -> str:
        """
        Allocate the next sequential number for the merchant and day.

        Must be called inside a transaction; the counter row stays locked
        until it commits.
        """
        day = day or timezone.now().date()
        sequence, _ = OrderNumberSequence.objects.select_for_update().get_or_create(
            merchant=merchant, day=day
        )
        sequence.last_value += 1
        sequence.save(update_fields=["last_value", "updated_at"])
        return format_order_number(merchant.order_number_prefix, day, sequence.last_value)

    @classmethod
    def fallback_number(
        cls, merchant: MerchantAccount, day: date | None = None, attempt: int = 0
    ) -> str:
        """Timestamp-suffixed number used when a sequential number collides."""
        day = day or timezone.now().date()
        suffix = str(time.time_ns() // 1_000_000)
        if attempt:
            suffix = f"{suffix}{attempt}"
        return format_order_number(merchant.order_number_prefix, day, suffix)
