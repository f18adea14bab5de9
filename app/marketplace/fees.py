"""
Fee calculation for marketplace orders.

All amounts are integers in minor units (pence). Rates are Decimals and every
rounding step is ROUND_HALF_UP to a whole minor unit.

The buyer pays:
    total = round(subtotal * (1 + buyer_fee_rate)) + fixed_fee + delivery

and the buyer service fee is whatever is left once subtotal and delivery are
taken out, so it absorbs the rounding. The merchant pays:
    merchant_fee = round(subtotal * merchant_fee_rate)

Usage:
    from marketplace.fees import compute_breakdown

    breakdown = compute_breakdown(product_subtotal=600, delivery_fee=0)
    breakdown.total_charged_to_buyer  # 683
    breakdown.merchant_payout         # 580
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.conf import settings

from marketplace.exceptions import FeeCalculationError

if TYPE_CHECKING:
    from typing import Any

WHOLE_UNIT = Decimal("1")

# Keeps every derived amount well inside a signed 64-bit column
MAX_AMOUNT_MINOR_UNITS = 10**12


@dataclass(frozen=True)
class PriceBreakdown:
    """
    Full price breakdown for one order, in minor units.

    Invariants:
        total_charged_to_buyer == product_subtotal + delivery_fee + buyer_service_fee
        merchant_payout == product_subtotal - merchant_service_fee
        platform_retained == buyer_service_fee + merchant_service_fee + delivery_fee
        total_charged_to_buyer == merchant_payout + platform_retained
    """

    product_subtotal: int
    delivery_fee: int
    buyer_service_fee: int
    merchant_service_fee: int
    total_charged_to_buyer: int
    platform_retained: int
    merchant_payout: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    def as_order_fields(self) -> dict[str, Any]:
        """Keyword arguments for the breakdown columns on Order."""
        return {
            "product_subtotal_minor_units": self.product_subtotal,
            "delivery_fee_minor_units": self.delivery_fee,
            "buyer_service_fee_minor_units": self.buyer_service_fee,
            "merchant_service_fee_minor_units": self.merchant_service_fee,
            "total_charged_minor_units": self.total_charged_to_buyer,
            "platform_retained_minor_units": self.platform_retained,
            "merchant_payout_minor_units": self.merchant_payout,
        }


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP))


def _check_amount(name: str, value: Any) -> int:
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise FeeCalculationError(
            f"{name} must be an integer number of minor units",
            details={"field": name, "value": repr(value)},
        )
    if value < 0:
        raise FeeCalculationError(
            f"{name} must not be negative",
            details={"field": name, "value": value},
        )
    if value > MAX_AMOUNT_MINOR_UNITS:
        raise FeeCalculationError(
            f"{name} exceeds {MAX_AMOUNT_MINOR_UNITS} minor units",
            details={"field": name, "value": value},
        )
    return value


def _check_rate(name: str, value: Any) -> Decimal:
    if isinstance(value, (bool, float)):
        raise FeeCalculationError(
            f"{name} must be a Decimal, int or numeric string",
            details={"field": name, "value": repr(value)},
        )
    try:
        rate = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise FeeCalculationError(
            f"{name} is not a number",
            details={"field": name, "value": repr(value)},
        ) from None
    if not rate.is_finite() or rate < 0 or rate > 1:
        raise FeeCalculationError(
            f"{name} must be between 0 and 1",
            details={"field": name, "value": str(rate)},
        )
    return rate


def compute_breakdown(
    product_subtotal: int,
    delivery_fee: int = 0,
    buyer_fee_rate: Decimal | str | int | None = None,
    merchant_fee_rate: Decimal | str | int | None = None,
    fixed_fee: int | None = None,
) -> PriceBreakdown:
    """
    Compute the price breakdown for an order.

    Rates and the fixed fee default to BUYER_FEE_RATE, MERCHANT_FEE_RATE and
    BUYER_FIXED_FEE_MINOR_UNITS from settings.

    Raises:
        FeeCalculationError: negative, non-integer or oversized amounts, or a
            rate outside [0, 1]
    """
    if buyer_fee_rate is None:
        buyer_fee_rate = settings.BUYER_FEE_RATE
    if merchant_fee_rate is None:
        merchant_fee_rate = settings.MERCHANT_FEE_RATE
    if fixed_fee is None:
        fixed_fee = settings.BUYER_FIXED_FEE_MINOR_UNITS

    subtotal = _check_amount("product_subtotal", product_subtotal)
    delivery = _check_amount("delivery_fee", delivery_fee)
    fixed = _check_amount("fixed_fee", fixed_fee)
    buyer_rate = _check_rate("buyer_fee_rate", buyer_fee_rate)
    merchant_rate = _check_rate("merchant_fee_rate", merchant_fee_rate)

    total = _round_half_up(Decimal(subtotal) * (1 + buyer_rate)) + fixed + delivery
    buyer_service_fee = total - subtotal - delivery
    merchant_service_fee = _round_half_up(Decimal(subtotal) * merchant_rate)
    merchant_payout = subtotal - merchant_service_fee
    platform_retained = buyer_service_fee + merchant_service_fee + delivery

    return PriceBreakdown(
        product_subtotal=subtotal,
        delivery_fee=delivery,
        buyer_service_fee=buyer_service_fee,
        merchant_service_fee=merchant_service_fee,
        total_charged_to_buyer=total,
        platform_retained=platform_retained,
        merchant_payout=merchant_payout,
    )
