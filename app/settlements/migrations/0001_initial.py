import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("marketplace", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "stripe_event_id",
                    models.CharField(
                        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Stripe event type (e.g., 'payment_intent.succeeded')",
                        max_length=100,
                    ),
                ),
                ("payload", models.JSONField(help_text="Full webhook payload from Stripe (JSON)")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True, help_text="When event was processed or rejected", null=True
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True,
                        help_text="Error message if processing failed or was rejected",
                        null=True,
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(default=0, help_text="Number of processing attempts"),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
                    models.Index(fields=["event_type", "created_at"], name="webhook_type_created_idx"),
                    models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TransferRecord",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID v4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "amount_minor_units",
                    models.PositiveBigIntegerField(help_text="Merchant payout in minor units"),
                ),
                (
                    "currency",
                    models.CharField(
                        default="gbp", help_text="ISO 4217 currency code (lowercase)", max_length=3
                    ),
                ),
                (
                    "state",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("succeeded", "Succeeded"),
                            ("failed_retryable", "Failed (Retryable)"),
                            ("failed_permanent", "Failed (Permanent)"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the settlement (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "attempt_count",
                    models.PositiveSmallIntegerField(default=0, help_text="Transfer attempts consumed"),
                ),
                (
                    "last_error",
                    models.TextField(blank=True, default="", help_text="Most recent failure reason"),
                ),
                (
                    "missing_requirements",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Stripe requirements blocking the payout account",
                    ),
                ),
                (
                    "next_attempt_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="When the next settlement attempt is due",
                        null=True,
                    ),
                ),
                (
                    "stripe_transfer_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Transfer ID (tr_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "idempotency_key",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Idempotency key sent with the transfer",
                        max_length=255,
                    ),
                ),
                ("succeeded_at", models.DateTimeField(blank=True, null=True)),
                (
                    "confirmed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When Stripe's transfer.created callback arrived",
                        null=True,
                    ),
                ),
                ("failed_permanently_at", models.DateTimeField(blank=True, null=True)),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "merchant",
                    models.ForeignKey(
                        help_text="Merchant receiving the payout",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transfer_records",
                        to="marketplace.merchantaccount",
                    ),
                ),
                (
                    "order",
                    models.OneToOneField(
                        help_text="Order being settled",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transfer_record",
                        to="marketplace.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Transfer Record",
                "verbose_name_plural": "Transfer Records",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["merchant", "state"], name="transfer_merchant_state_idx"),
                    models.Index(fields=["state", "next_attempt_at"], name="transfer_state_due_idx"),
                ],
            },
        ),
    ]
