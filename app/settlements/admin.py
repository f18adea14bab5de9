"""
Settlement admin configuration.

Transfer records change only through the orchestrator; the one operator
action is requeueing a permanent failure once its cause is fixed.
"""

from django.contrib import admin, messages

from django_fsm import TransitionNotAllowed

from settlements.exceptions import StaleRecordError
from settlements.models import TransferRecord, WebhookEvent
from settlements.services import TransferOrchestrator
from settlements.state_machines import TransferState

__all__ = [
    "TransferRecordAdmin",
    "WebhookEventAdmin",
]


@admin.register(TransferRecord)
class TransferRecordAdmin(admin.ModelAdmin):
    """
    Admin configuration for TransferRecord.

    Provides visibility into settlement progress and failures.
    """

    list_display = [
        "order",
        "merchant",
        "amount_display",
        "state",
        "attempt_count",
        "next_attempt_at",
        "stripe_transfer_id",
        "created_at",
    ]
    list_filter = ["state", "currency", "created_at"]
    search_fields = [
        "id",
        "stripe_transfer_id",
        "order__order_number",
        "order__external_object_id",
        "merchant__business_name",
    ]
    readonly_fields = [
        "id",
        "order",
        "merchant",
        "amount_minor_units",
        "currency",
        "state",
        "attempt_count",
        "last_error",
        "missing_requirements",
        "next_attempt_at",
        "stripe_transfer_id",
        "idempotency_key",
        "succeeded_at",
        "confirmed_at",
        "failed_permanently_at",
        "version",
        "created_at",
        "updated_at",
    ]
    list_select_related = ["order", "merchant"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["requeue_failed"]

    fieldsets = (
        (None, {"fields": ("id", "order", "merchant", "state")}),
        ("Amount", {"fields": ("amount_minor_units", "currency")}),
        (
            "Attempts",
            {
                "fields": (
                    "attempt_count",
                    "next_attempt_at",
                    "last_error",
                    "missing_requirements",
                ),
            },
        ),
        ("Stripe", {"fields": ("stripe_transfer_id", "idempotency_key")}),
        (
            "Timestamps",
            {
                "fields": (
                    "succeeded_at",
                    "confirmed_at",
                    "failed_permanently_at",
                    "version",
                    "created_at",
                    "updated_at",
                ),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: TransferRecord) -> str:
        return f"{obj.amount_minor_units / 100:.2f} {obj.currency.upper()}"

    @admin.action(description="Requeue selected permanent failures")
    def requeue_failed(self, request, queryset):
        """Give permanently failed settlements a fresh attempt budget."""
        requeued = 0
        for record in queryset.filter(state=TransferState.FAILED_PERMANENT):
            try:
                TransferOrchestrator.requeue(record.id, record.version)
            except (StaleRecordError, TransitionNotAllowed) as e:
                self.message_user(
                    request,
                    f"Could not requeue {record.order_id}: {e}",
                    level=messages.WARNING,
                )
                continue
            requeued += 1
        self.message_user(request, f"Requeued {requeued} settlements.")

    def has_add_permission(self, request) -> bool:
        """Records are created with their order."""
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "stripe_event_id",
        "event_type",
        "payload",
        "processed_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "stripe_event_id", "event_type", "status")}),
        ("Processing", {"fields": ("processed_at", "retry_count")}),
        ("Error Info", {"fields": ("error_message",), "classes": ("collapse",)}),
        ("Payload", {"fields": ("payload",), "classes": ("collapse",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False
