from decimal import Decimal

import pytest

from storefront.services.pricing import (
    amount_to_cents,
    bc_tax,
    cents_to_amount,
    corrected_total,
    coupon_discount_amount,
    fallback_shipping_fee,
    format_currency,
    haversine_km,
    normalize_payment_method,
    reconcile_total,
    shipping_fee_for_distance,
)


def test_cents_round_trip_rounds_half_up():
    assert amount_to_cents(19.995) == 2000
    assert amount_to_cents("0.5") == 50
    assert cents_to_amount(10600) == Decimal("106.00")


@pytest.mark.parametrize("method", ["afterpay", "afterpay_clearpay", "klarna", "affirm"])
def test_reconcile_total_strips_bnpl_fee(method):
    assert reconcile_total(method, Decimal("106.00")) == Decimal("100.00")


def test_reconcile_total_keeps_card_charge():
    # card charges already include shipping and tax
    assert reconcile_total("card", Decimal("123.45")) == Decimal("123.45")
    assert reconcile_total(None, 50) == Decimal("50.00")


def test_normalize_payment_method():
    assert normalize_payment_method("afterpay_clearpay") == "afterpay"
    assert normalize_payment_method("Klarna") == "klarna"
    assert normalize_payment_method("link") == "card"
    assert normalize_payment_method(None) == "card"


def test_corrected_total_removes_legacy_fee():
    items = [{"price": 50.0, "quantity": 2}]
    assert corrected_total({"items": items, "total_amount": 106.0}) == 100.0
    assert corrected_total({"items": items, "total_amount": 106.05}) == 100.0
    # a card total with tax and shipping stays as stored
    assert corrected_total({"items": items, "total_amount": 122.0}) == 122.0
    assert corrected_total({"items": [], "total_amount": 10.0}) == 10.0


def test_coupon_discount_amount():
    assert coupon_discount_amount(80, 10, "percentage") == Decimal("8.00")
    assert coupon_discount_amount(80, 10, "fixed") == Decimal("10.00")
    assert coupon_discount_amount(5, 10, "fixed") == Decimal("5.00")
    assert coupon_discount_amount(80, 0, "fixed") == Decimal("0.00")


def test_bc_tax():
    assert bc_tax(100) == {"gst": 5.0, "pst": 7.0, "total_tax": 12.0}
    assert bc_tax("19.99") == {"gst": 1.0, "pst": 1.4, "total_tax": 2.4}


def test_shipping_tiers():
    assert shipping_fee_for_distance(0) == 0
    assert shipping_fee_for_distance(10) == 0
    assert shipping_fee_for_distance(10.1) == 5
    assert shipping_fee_for_distance(50) == 10
    assert shipping_fee_for_distance(99) == 15
    assert shipping_fee_for_distance(400) == 20


def test_fallback_shipping_fee():
    assert fallback_shipping_fee("Victoria", "BC") == 0
    assert fallback_shipping_fee("Greater Victoria", "British Columbia") == 0
    assert fallback_shipping_fee("Vancouver", "BC") == 10
    assert fallback_shipping_fee("Victoria", "TX") == 10


def test_haversine_km_victoria_to_vancouver():
    distance = haversine_km(48.4284, -123.3656, 49.2827, -123.1207)
    assert 90 < distance < 100


def test_format_currency():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency(-3) == "-$3.00"
