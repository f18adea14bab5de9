"""
State enums for settlement models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

TransferRecord States:
    pending → succeeded
    pending → failed_retryable → succeeded
    pending/failed_retryable → failed_permanent → pending (operator requeue)

WebhookEvent Status:
    pending → processing → processed
    processing → failed → processing (retry)
    processing → rejected (data quality incident, not retried)
"""

from django.db import models


class TransferState(models.TextChoices):
    """
    States for the TransferRecord lifecycle.

    Terminal states: SUCCEEDED, FAILED_PERMANENT (until an operator requeues)
    """

    PENDING = "pending", "Pending"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED_RETRYABLE = "failed_retryable", "Failed (Retryable)"
    FAILED_PERMANENT = "failed_permanent", "Failed (Permanent)"


TERMINAL_TRANSFER_STATES = (TransferState.SUCCEEDED, TransferState.FAILED_PERMANENT)


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    REJECTED marks events whose payload failed validation. They are kept
    for operator review and never retried.
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
    REJECTED = "rejected", "Rejected"
