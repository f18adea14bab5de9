import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Buyer",
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
                    "phone",
                    models.CharField(
                        blank=True,
                        help_text="Normalized phone number, primary upsert key",
                        max_length=32,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "email",
                    models.EmailField(
                        blank=True,
                        help_text="Lower-cased email, upsert key when no phone is supplied",
                        max_length=254,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "first_name",
                    models.CharField(blank=True, default="", help_text="Given name", max_length=100),
                ),
                (
                    "last_name",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Family name (everything after the first word)",
                        max_length=100,
                    ),
                ),
                (
                    "address_line",
                    models.CharField(blank=True, default="", help_text="Street address", max_length=255),
                ),
                ("city", models.CharField(blank=True, default="", help_text="City", max_length=100)),
                (
                    "region",
                    models.CharField(
                        blank=True, default="", help_text="State, county or region", max_length=100
                    ),
                ),
                (
                    "postal_code",
                    models.CharField(blank=True, default="", help_text="Postal code", max_length=20),
                ),
                (
                    "country",
                    models.CharField(
                        blank=True, default="", help_text="ISO 3166-1 alpha-2 country", max_length=2
                    ),
                ),
            ],
            options={
                "verbose_name": "Buyer",
                "verbose_name_plural": "Buyers",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("phone__isnull", False), ("email__isnull", False), _connector="OR"),
                        name="buyer_has_contact_key",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="MerchantAccount",
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
                    "business_name",
                    models.CharField(
                        blank=True, default="", help_text="Trading name shown to buyers", max_length=200
                    ),
                ),
                (
                    "email",
                    models.EmailField(
                        blank=True,
                        default="",
                        help_text="Address that receives new-order alerts",
                        max_length=254,
                    ),
                ),
                (
                    "tier",
                    models.CharField(
                        choices=[("free", "Free"), ("standard", "Standard"), ("premium", "Premium")],
                        db_index=True,
                        default="free",
                        help_text="Purchased subscription tier (changed only by the tier reconciler)",
                        max_length=20,
                    ),
                ),
                (
                    "tier_expires_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="When the paid tier lapses back to free",
                        null=True,
                    ),
                ),
                (
                    "product_limit",
                    models.IntegerField(
                        default=3,
                        help_text="Maximum listed products for the tier (-1 = unlimited)",
                    ),
                ),
                (
                    "payout_account_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Connect account ID (acct_xxx), null until onboarded",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "payout_account_ready",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the last live check found the account able to receive transfers",
                    ),
                ),
                (
                    "payout_requirements_due",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Outstanding Stripe requirements at the last check",
                    ),
                ),
                (
                    "payout_status_checked_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When payout readiness was last checked against Stripe",
                        null=True,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
            ],
            options={
                "verbose_name": "Merchant Account",
                "verbose_name_plural": "Merchant Accounts",
                "ordering": ["business_name"],
            },
        ),
        migrations.CreateModel(
            name="Order",
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
                    "order_number",
                    models.CharField(
                        help_text="Human-readable order number, unique per merchant",
                        max_length=40,
                    ),
                ),
                (
                    "external_object_id",
                    models.CharField(
                        help_text="Payment processor object id (pi_xxx); one order per payment",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("fulfilled", "Fulfilled"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current status of the order (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "product_subtotal_minor_units",
                    models.PositiveBigIntegerField(help_text="Sum of line totals"),
                ),
                (
                    "delivery_fee_minor_units",
                    models.PositiveBigIntegerField(default=0, help_text="Delivery cost charged to the buyer"),
                ),
                (
                    "buyer_service_fee_minor_units",
                    models.PositiveBigIntegerField(
                        help_text="Service fee charged to the buyer (carries rounding)"
                    ),
                ),
                (
                    "merchant_service_fee_minor_units",
                    models.PositiveBigIntegerField(help_text="Service fee withheld from the merchant"),
                ),
                (
                    "total_charged_minor_units",
                    models.PositiveBigIntegerField(help_text="Amount the buyer paid"),
                ),
                (
                    "platform_retained_minor_units",
                    models.PositiveBigIntegerField(help_text="Amount the platform keeps (fees plus delivery)"),
                ),
                (
                    "merchant_payout_minor_units",
                    models.PositiveBigIntegerField(help_text="Amount transferred to the merchant"),
                ),
                (
                    "currency",
                    models.CharField(
                        default="gbp", help_text="ISO 4217 currency code (lowercase)", max_length=3
                    ),
                ),
                (
                    "fulfillment_type",
                    models.CharField(
                        choices=[("pickup", "Pickup"), ("delivery", "Delivery")],
                        default="pickup",
                        help_text="Pickup or delivery",
                        max_length=20,
                    ),
                ),
                (
                    "delivery_carrier",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Carrier or delivery service name",
                        max_length=100,
                    ),
                ),
                (
                    "delivery_address",
                    models.TextField(blank=True, default="", help_text="Address the order ships to"),
                ),
                ("buyer_name", models.CharField(blank=True, default="", max_length=200)),
                ("buyer_email", models.EmailField(blank=True, default="", max_length=254)),
                ("buyer_phone", models.CharField(blank=True, default="", max_length=32)),
                (
                    "paid_at",
                    models.DateTimeField(blank=True, help_text="When payment was confirmed", null=True),
                ),
                ("fulfilled_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "buyer",
                    models.ForeignKey(
                        help_text="Buyer who placed the order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="marketplace.buyer",
                    ),
                ),
                (
                    "merchant",
                    models.ForeignKey(
                        help_text="Merchant fulfilling the order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="marketplace.merchantaccount",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["merchant", "status"], name="order_merchant_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("merchant", "order_number"),
                        name="order_number_unique_per_merchant",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            (
                                "total_charged_minor_units",
                                models.F("product_subtotal_minor_units")
                                + models.F("delivery_fee_minor_units")
                                + models.F("buyer_service_fee_minor_units"),
                            )
                        ),
                        name="order_total_reconciles",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderLineItem",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
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
                ("position", models.PositiveIntegerField(help_text="Zero-based position in the cart")),
                (
                    "product_id",
                    models.CharField(help_text="Merchant catalogue product id", max_length=255),
                ),
                (
                    "product_name",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Product name at time of purchase",
                        max_length=255,
                    ),
                ),
                ("quantity", models.PositiveIntegerField(help_text="Units purchased")),
                (
                    "unit_price_minor_units",
                    models.PositiveBigIntegerField(help_text="Price per unit at time of purchase"),
                ),
                (
                    "line_total_minor_units",
                    models.PositiveBigIntegerField(help_text="quantity x unit price"),
                ),
                (
                    "order",
                    models.ForeignKey(
                        help_text="Order this line belongs to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="line_items",
                        to="marketplace.order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order Line Item",
                "verbose_name_plural": "Order Line Items",
                "ordering": ["order", "position"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("order", "position"),
                        name="line_item_position_unique",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("quantity__gt", 0)),
                        name="line_item_quantity_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderNumberSequence",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
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
                ("day", models.DateField(help_text="UTC day the counter applies to")),
                (
                    "last_value",
                    models.PositiveIntegerField(default=0, help_text="Last sequence number handed out"),
                ),
                (
                    "merchant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="order_number_sequences",
                        to="marketplace.merchantaccount",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order Number Sequence",
                "verbose_name_plural": "Order Number Sequences",
                "ordering": ["-day"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("merchant", "day"),
                        name="order_sequence_unique_per_day",
                    ),
                ],
            },
        ),
    ]
