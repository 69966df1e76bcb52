"""Money helpers: order total reconciliation, discounts, tax and shipping fees."""

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Optional

CENT = Decimal("0.01")

BNPL_METHODS = ("afterpay", "afterpay_clearpay", "klarna", "affirm")
BNPL_FEE_RATE = Decimal("0.06")
# stored totals this close to items x 1.06 were saved with the fee still in
LEGACY_FEE_TOLERANCE = Decimal("0.10")

GST_RATE = Decimal("0.05")
PST_RATE = Decimal("0.07")

STORE_LOCATION = {"lat": 48.4284, "lng": -123.3656}
EARTH_RADIUS_KM = 6371
SHIPPING_TIERS = ((10, 0), (25, 5), (50, 10), (100, 15))
MAX_SHIPPING_FEE = 20
DEFAULT_SHIPPING_FEE = 10


def to_decimal(value: Any) -> Decimal:
    if value is None or value == "":
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize(value: Any) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def money(value: Any) -> float:
    """Round to cents and return a float suitable for storing in Mongo."""
    return float(quantize(value))


def cents_to_amount(cents: Any) -> Decimal:
    return quantize(to_decimal(cents or 0) / 100)


def amount_to_cents(amount: Any) -> int:
    return int((to_decimal(amount) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def is_bnpl(method: Optional[str]) -> bool:
    return (method or "").strip().lower() in BNPL_METHODS


def normalize_payment_method(method: Optional[str]) -> str:
    method = (method or "").strip().lower()
    if method in ("afterpay", "afterpay_clearpay"):
        return "afterpay"
    if method in ("klarna", "affirm"):
        return method
    return "card"


def strip_bnpl_fee(charged: Any) -> Decimal:
    return quantize(to_decimal(charged) / (1 + BNPL_FEE_RATE))


def reconcile_total(method: Optional[str], charged: Any) -> Decimal:
    """Amount to store on the order for what the gateway actually charged.

    Card payments keep the charged amount. Buy-now-pay-later charges carry a
    provider fee on top which is not part of the order value.
    """
    if is_bnpl(method):
        return strip_bnpl_fee(charged)
    return quantize(charged)


def items_total(items: Iterable[Dict[str, Any]]) -> Decimal:
    total = Decimal(0)
    for item in items or []:
        total += to_decimal(item.get("price")) * int(item.get("quantity") or 0)
    return quantize(total)


def corrected_total(order: Dict[str, Any]) -> float:
    stored = to_decimal(order.get("total_amount"))
    subtotal = items_total(order.get("items") or [])
    if subtotal > 0 and abs(stored - subtotal * (1 + BNPL_FEE_RATE)) < LEGACY_FEE_TOLERANCE:
        return money(subtotal)
    return money(stored)


def coupon_discount_amount(subtotal: Any, discount: Any, discount_type: Optional[str]) -> Decimal:
    subtotal = to_decimal(subtotal)
    discount = to_decimal(discount)
    if discount <= 0 or subtotal <= 0:
        return Decimal("0.00")
    if discount_type == "percentage":
        return quantize(subtotal * discount / 100)
    return quantize(min(discount, subtotal))


def bc_tax(subtotal: Any) -> Dict[str, float]:
    subtotal = to_decimal(subtotal)
    gst = quantize(subtotal * GST_RATE)
    pst = quantize(subtotal * PST_RATE)
    return {"gst": float(gst), "pst": float(pst), "total_tax": float(gst + pst)}


def format_currency(amount: Any) -> str:
    value = quantize(amount)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (math.sin(d_lat / 2) ** 2
         + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def shipping_fee_for_distance(distance_km: float) -> int:
    for limit, fee in SHIPPING_TIERS:
        if distance_km <= limit:
            return fee
    return MAX_SHIPPING_FEE


def is_victoria_bc(city: Optional[str], state: Optional[str]) -> bool:
    city = (city or "").lower()
    state = (state or "").lower()
    return "victoria" in city and ("bc" in state or "british columbia" in state)


def fallback_shipping_fee(city: Optional[str], state: Optional[str]) -> int:
    if is_victoria_bc(city, state):
        return 0
    return DEFAULT_SHIPPING_FEE
