"""
Decoding of Stripe payment metadata into validated intents.

Stripe metadata values are strings, some of them JSON documents written by
the checkout. This module turns them into immutable intent objects and
refuses anything it cannot read exactly: money must be a non-negative,
finite decimal with at most two fractional digits, quantities must be
positive integers. Nothing is coerced or defaulted into a plausible value.

Metadata written by the customer portal checkout:

    orderType       "customer_portal"
    wholesalerId    merchant id
    customerData    JSON {name, email, phone, address, city, state,
                          postalCode, country}
                    or flat customerName / customerEmail / customerPhone
    cart            JSON [{productId, quantity, unitPrice, productName?}]
    shippingInfo    JSON {option, service: {price, serviceName}}
                    falling back to shippingCost / deliveryCost and
                    deliveryService / deliveryCarrier

Plan purchases carry userId (or merchantId) plus tier, targetTier or planId.
"""

from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from marketplace.exceptions import OrderIntentValidationError
from marketplace.state_machines import FulfillmentType

if TYPE_CHECKING:
    from collections.abc import Mapping
    from typing import Any

CUSTOMER_PORTAL_ORDER_TYPE = "customer_portal"

MERCHANT_ID_KEYS = ("userId", "merchantId")
PLAN_ID_KEYS = ("targetTier", "tier", "planId")

CENT = Decimal("0.01")

# Largest single amount Stripe accepts in a GBP charge
MAX_MONEY = Decimal("999999.99")

_PHONE_NOISE = re.compile(r"[\s\-().]")
_PHONE_PATTERN = re.compile(r"^\+?\d{6,20}$")


# =============================================================================
# Intent Types
# =============================================================================


@dataclass(frozen=True)
class BuyerDetails:
    """Buyer identity as supplied at checkout."""

    name: str = ""
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    phone: str | None = None
    address_line: str = ""
    city: str = ""
    region: str = ""
    postal_code: str = ""
    country: str = ""

    @property
    def formatted_address(self) -> str:
        parts = (self.address_line, self.city, self.region, self.postal_code, self.country)
        return ", ".join(part for part in parts if part)


@dataclass(frozen=True)
class LineItemIntent:
    product_id: str
    quantity: int
    unit_price_minor_units: int
    product_name: str = ""

    @property
    def line_total_minor_units(self) -> int:
        return self.quantity * self.unit_price_minor_units


@dataclass(frozen=True)
class OrderIntent:
    """
    What a captured customer portal payment bought.

    Attributes:
        merchant_id: MerchantAccount id (UUID string)
        buyer: Buyer identity and address
        line_items: Cart lines in checkout order (never empty)
        delivery_fee_minor_units: Delivery cost charged to the buyer
        fulfillment_type: pickup or delivery
        delivery_carrier: Carrier or service name for deliveries
    """

    merchant_id: str
    buyer: BuyerDetails
    line_items: tuple[LineItemIntent, ...]
    delivery_fee_minor_units: int = 0
    fulfillment_type: str = FulfillmentType.PICKUP
    delivery_carrier: str = ""

    @property
    def product_subtotal_minor_units(self) -> int:
        return sum(item.line_total_minor_units for item in self.line_items)


@dataclass(frozen=True)
class PlanIntent:
    merchant_id: str
    plan_id: str


# =============================================================================
# Field Parsers
# =============================================================================


def _invalid(message: str, field_name: str, value: Any) -> OrderIntentValidationError:
    return OrderIntentValidationError(
        message,
        details={"field": field_name, "value": repr(value)[:200]},
    )


def parse_money(value: Any, field_name: str) -> int:
    """
    Parse a major-unit money value ("6.50", 6.5 as Decimal, 6) into pence.

    Raises:
        OrderIntentValidationError: negative, non-finite, non-numeric, above
            MAX_MONEY or more than two fractional digits
    """
    if isinstance(value, (bool, float)) or value is None:
        raise _invalid(f"{field_name} must be a decimal amount", field_name, value)
    try:
        amount = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except InvalidOperation:
        raise _invalid(f"{field_name} is not a number", field_name, value) from None
    if not amount.is_finite():
        raise _invalid(f"{field_name} must be finite", field_name, value)
    if amount < 0:
        raise _invalid(f"{field_name} must not be negative", field_name, value)
    if amount > MAX_MONEY:
        raise _invalid(f"{field_name} exceeds {MAX_MONEY}", field_name, value)
    if amount != amount.quantize(CENT):
        raise _invalid(
            f"{field_name} has more than two decimal places", field_name, value
        )
    return int(amount * 100)


def parse_quantity(value: Any, field_name: str) -> int:
    """Parse a strictly positive integer quantity."""
    if isinstance(value, bool):
        raise _invalid(f"{field_name} must be a positive integer", field_name, value)
    if isinstance(value, int):
        quantity = value
    elif isinstance(value, str) and value.strip().isdigit():
        quantity = int(value.strip())
    else:
        raise _invalid(f"{field_name} must be a positive integer", field_name, value)
    if quantity <= 0:
        raise _invalid(f"{field_name} must be a positive integer", field_name, value)
    return quantity


def normalize_phone(value: Any) -> str | None:
    if value is None:
        return None
    phone = _PHONE_NOISE.sub("", str(value))
    if not phone:
        return None
    if not _PHONE_PATTERN.match(phone):
        raise _invalid("phone number is not valid", "customerPhone", value)
    return phone


def normalize_email(value: Any) -> str | None:
    if value is None:
        return None
    email = str(value).strip().lower()
    if not email:
        return None
    local, _, domain = email.partition("@")
    if not local or "." not in domain:
        raise _invalid("email address is not valid", "customerEmail", value)
    return email


def split_name(name: str) -> tuple[str, str]:
    """Split "Ada Lovelace King" into ("Ada", "Lovelace King")."""
    parts = name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _load_json(metadata: Mapping[str, Any], key: str) -> Any:
    raw = metadata.get(key)
    if raw in (None, ""):
        return None
    if not isinstance(raw, str):
        return raw
    try:
        # parse_float keeps prices exact
        return json.loads(raw, parse_float=Decimal)
    except json.JSONDecodeError:
        raise _invalid(f"{key} is not valid JSON", key, raw) from None


def _parse_merchant_id(value: Any, field_name: str) -> str:
    if not value:
        raise _invalid(f"{field_name} is required", field_name, value)
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        raise _invalid(f"{field_name} is not a merchant id", field_name, value) from None


# =============================================================================
# Intent Parsers
# =============================================================================


def is_customer_portal_payment(metadata: Mapping[str, Any]) -> bool:
    return metadata.get("orderType") == CUSTOMER_PORTAL_ORDER_TYPE


def is_plan_purchase(metadata: Mapping[str, Any]) -> bool:
    return any(metadata.get(key) for key in MERCHANT_ID_KEYS) and any(
        metadata.get(key) for key in PLAN_ID_KEYS
    )


def _parse_buyer(metadata: Mapping[str, Any]) -> BuyerDetails:
    customer = _load_json(metadata, "customerData")
    if customer is not None and not isinstance(customer, dict):
        raise _invalid("customerData must be an object", "customerData", customer)
    customer = customer or {}

    name = str(customer.get("name") or metadata.get("customerName") or "").strip()
    email = normalize_email(customer.get("email") or metadata.get("customerEmail"))
    phone = normalize_phone(customer.get("phone") or metadata.get("customerPhone"))
    if phone is None and email is None:
        raise _invalid(
            "buyer needs a phone number or an email address", "customerPhone", None
        )

    first_name, last_name = split_name(name)
    return BuyerDetails(
        name=name,
        first_name=first_name,
        last_name=last_name,
        email=email,
        phone=phone,
        address_line=str(customer.get("address") or "").strip(),
        city=str(customer.get("city") or "").strip(),
        region=str(customer.get("state") or "").strip(),
        postal_code=str(customer.get("postalCode") or "").strip(),
        country=str(customer.get("country") or "").strip().upper()[:2],
    )


def _parse_cart(metadata: Mapping[str, Any]) -> tuple[LineItemIntent, ...]:
    cart = _load_json(metadata, "cart")
    if not isinstance(cart, list) or not cart:
        raise _invalid("cart must be a non-empty list", "cart", cart)

    items = []
    for index, line in enumerate(cart):
        prefix = f"cart[{index}]"
        if not isinstance(line, dict):
            raise _invalid(f"{prefix} must be an object", prefix, line)
        product_id = str(line.get("productId") or "").strip()
        if not product_id:
            raise _invalid(f"{prefix}.productId is required", f"{prefix}.productId", line)
        items.append(
            LineItemIntent(
                product_id=product_id,
                quantity=parse_quantity(line.get("quantity"), f"{prefix}.quantity"),
                unit_price_minor_units=parse_money(
                    line.get("unitPrice"), f"{prefix}.unitPrice"
                ),
                product_name=str(line.get("productName") or "").strip(),
            )
        )
    return tuple(items)


def _parse_fulfillment(metadata: Mapping[str, Any]) -> tuple[str, int, str]:
    """Return (fulfillment_type, delivery_fee_minor_units, carrier)."""
    shipping = _load_json(metadata, "shippingInfo")
    if shipping is not None:
        if not isinstance(shipping, dict):
            raise _invalid("shippingInfo must be an object", "shippingInfo", shipping)
        option = shipping.get("option") or FulfillmentType.PICKUP
        if option not in FulfillmentType.values:
            raise _invalid(
                "shippingInfo.option must be pickup or delivery",
                "shippingInfo.option",
                option,
            )
        if option == FulfillmentType.DELIVERY:
            service = shipping.get("service") or {}
            if not isinstance(service, dict):
                raise _invalid(
                    "shippingInfo.service must be an object",
                    "shippingInfo.service",
                    service,
                )
            fee = parse_money(service.get("price", "0"), "shippingInfo.service.price")
            return FulfillmentType.DELIVERY, fee, str(service.get("serviceName") or "")
        return FulfillmentType.PICKUP, 0, ""

    for cost_key, carrier_key in (
        ("shippingCost", "deliveryService"),
        ("deliveryCost", "deliveryCarrier"),
    ):
        if metadata.get(cost_key) in (None, ""):
            continue
        fee = parse_money(metadata[cost_key], cost_key)
        if fee > 0:
            return FulfillmentType.DELIVERY, fee, str(metadata.get(carrier_key) or "")

    return FulfillmentType.PICKUP, 0, ""


def parse_order_intent(metadata: Mapping[str, Any]) -> OrderIntent:
    """
    Decode customer portal payment metadata.

    Raises:
        OrderIntentValidationError: any field is missing or malformed
    """
    if not is_customer_portal_payment(metadata):
        raise _invalid(
            "metadata is not a customer portal order", "orderType", metadata.get("orderType")
        )
    fulfillment_type, delivery_fee, carrier = _parse_fulfillment(metadata)
    return OrderIntent(
        merchant_id=_parse_merchant_id(metadata.get("wholesalerId"), "wholesalerId"),
        buyer=_parse_buyer(metadata),
        line_items=_parse_cart(metadata),
        delivery_fee_minor_units=delivery_fee,
        fulfillment_type=fulfillment_type,
        delivery_carrier=carrier,
    )


def parse_merchant_reference(metadata: Mapping[str, Any]) -> str | None:
    """Merchant id carried by plan and subscription metadata, if any."""
    key = next((key for key in MERCHANT_ID_KEYS if metadata.get(key)), None)
    if key is None:
        return None
    return _parse_merchant_id(metadata[key], key)


def parse_plan_intent(metadata: Mapping[str, Any]) -> PlanIntent:
    """
    Decode plan purchase metadata.

    The plan id is returned as given; the tier reconciler decides whether it
    names a known tier.
    """
    merchant_id = parse_merchant_reference(metadata)
    plan_key = next((key for key in PLAN_ID_KEYS if metadata.get(key)), None)
    if merchant_id is None:
        raise _invalid("plan purchase is missing the merchant id", "userId", None)
    if plan_key is None:
        raise _invalid("plan purchase is missing the plan", "tier", None)
    return PlanIntent(
        merchant_id=merchant_id,
        plan_id=str(metadata[plan_key]).strip().lower(),
    )
