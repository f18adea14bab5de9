"""
Marketplace admin configuration.

Orders and line items are read-only here: they are created from payments and
change only through their state transitions.
"""

from django.contrib import admin

from marketplace.models import Buyer, MerchantAccount, Order, OrderLineItem


@admin.register(MerchantAccount)
class MerchantAccountAdmin(admin.ModelAdmin):
    """
    Admin configuration for MerchantAccount.

    Tier fields are read-only; tiers change only through plan events.
    """

    list_display = [
        "business_name",
        "email",
        "tier",
        "tier_expires_at",
        "payout_account_id",
        "payout_account_ready",
        "created_at",
    ]
    list_filter = ["tier", "payout_account_ready"]
    search_fields = ["id", "business_name", "email", "payout_account_id"]
    readonly_fields = [
        "id",
        "tier",
        "tier_expires_at",
        "product_limit",
        "payout_account_ready",
        "payout_requirements_due",
        "payout_status_checked_at",
        "version",
        "created_at",
        "updated_at",
    ]
    ordering = ["business_name"]

    fieldsets = (
        (None, {"fields": ("id", "business_name", "email")}),
        ("Subscription", {"fields": ("tier", "tier_expires_at", "product_limit")}),
        (
            "Payout Account",
            {
                "fields": (
                    "payout_account_id",
                    "payout_account_ready",
                    "payout_requirements_due",
                    "payout_status_checked_at",
                ),
            },
        ),
        ("Timestamps", {"fields": ("version", "created_at", "updated_at")}),
    )


@admin.register(Buyer)
class BuyerAdmin(admin.ModelAdmin):
    list_display = ["id", "first_name", "last_name", "phone", "email", "created_at"]
    search_fields = ["id", "phone", "email", "last_name"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]


class OrderLineItemInline(admin.TabularInline):
    """Inline display of order lines."""

    model = OrderLineItem
    extra = 0
    can_delete = False
    readonly_fields = [
        "position",
        "product_id",
        "product_name",
        "quantity",
        "unit_price_minor_units",
        "line_total_minor_units",
    ]

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Admin configuration for Order.

    Provides visibility into orders and their breakdown. Orders cannot be
    added or deleted here.
    """

    list_display = [
        "order_number",
        "merchant",
        "buyer_name",
        "total_display",
        "status",
        "fulfillment_type",
        "paid_at",
    ]
    list_filter = ["status", "fulfillment_type", "currency", "created_at"]
    search_fields = ["id", "order_number", "external_object_id", "buyer_phone", "buyer_email"]
    readonly_fields = [field.name for field in Order._meta.fields]
    inlines = [OrderLineItemInline]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def total_display(self, obj: Order) -> str:
        """Display the amount charged formatted as currency."""
        return f"{obj.total_charged_minor_units / 100:.2f} {obj.currency.upper()}"

    total_display.short_description = "Total"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for orders (audit trail)."""
        return False
