"""
Celery tasks for the marketplace app.

Tasks:
    expire_lapsed_tiers: Return merchants with lapsed paid tiers to free
        (scheduled hourly via django-celery-beat)
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.db import OperationalError

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(OperationalError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
    acks_late=True,
)
def expire_lapsed_tiers(self) -> dict:
    """
    Downgrade every merchant whose paid period has ended.

    Returns:
        Dict with expired_count
    """
    from marketplace.services import TierReconciler

    count = TierReconciler.expire_lapsed()
    logger.info(
        "Expired lapsed tiers",
        extra={"expired_count": count, "task_id": self.request.id},
    )
    return {"expired_count": count}
