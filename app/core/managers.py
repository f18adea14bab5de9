"""
Custom QuerySet and Manager classes for common patterns.

This module provides reusable manager patterns:
- BaseQuerySet: Common utility methods for querysets
- PermanentRecordQuerySet: Refuses bulk deletion of financial records

Usage:
    from core.managers import PermanentRecordQuerySet

    class Order(BaseModel):
        objects = PermanentRecordQuerySet.as_manager()

    Order.objects.filter(merchant=merchant).created_between(start, end)
    Order.objects.all().delete()  # raises ConflictError
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models

from core.exceptions import ConflictError

if TYPE_CHECKING:
    from datetime import date, datetime


class BaseQuerySet(models.QuerySet):
    """
    Enhanced QuerySet with common utility methods.
    """

    def created_between(
        self, start: datetime | date, end: datetime | date
    ) -> BaseQuerySet:
        """Filter records created within a date range (inclusive)."""
        return self.filter(created_at__gte=start, created_at__lte=end)

    def updated_since(self, since: datetime | date) -> BaseQuerySet:
        """Filter records updated since a given time."""
        return self.filter(updated_at__gte=since)


class PermanentRecordQuerySet(BaseQuerySet):
    """
    QuerySet for records that must never be deleted.

    Orders and their line items are the audit trail for money that has
    moved; they can only change status, never disappear.
    """

    def delete(self):
        raise ConflictError(
            f"{self.model._meta.verbose_name_plural} cannot be deleted",
            error_code="DELETE_FORBIDDEN",
            details={"model": self.model._meta.label},
        )

    delete.queryset_only = True
