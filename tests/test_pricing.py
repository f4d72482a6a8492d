from __future__ import annotations

from decimal import Decimal

import pytest

from hotel_broker.errors import ValidationError
from hotel_broker.pricing.engine import Coupon, CouponKind, PricingEngine, PricingOptions


@pytest.fixture
def engine() -> PricingEngine:
    return PricingEngine(PricingOptions(), special_hotel_codes={"SPC"})


def test_margin_floor_applies_when_upstream_retail_is_missing_or_too_low(engine):
    assert engine.price(Decimal("100")).retail_price == Decimal("110.00")
    low = engine.price(Decimal("100"), upstream_retail=Decimal("105"))
    assert low.retail_price == Decimal("110.00")
    assert low.total_price == Decimal("110.00")
    assert low.margin_amount == Decimal("10.00")
    assert low.discount_amount == Decimal("0.00")


def test_upstream_retail_above_floor_is_kept(engine):
    priced = engine.price(Decimal("100"), upstream_retail=Decimal("120"))
    assert priced.retail_price == Decimal("120.00")
    assert priced.profit_percentage == Decimal("0.200000")


def test_margin_floor_rounds_up_to_the_cent(engine):
    assert engine.margin_floor(Decimal("33.33")) == Decimal("36.67")


def test_special_hotels_get_the_discount_after_the_floor(engine):
    assert engine.is_special("SPC")
    assert not engine.is_special("H1")
    priced = engine.price(Decimal("100"), special=True)
    assert priced.retail_price == Decimal("110.00")
    assert priced.total_price == Decimal("104.50")
    assert priced.discount_amount == Decimal("5.50")


def test_coupons_apply_after_special_discount(engine):
    percent = engine.price(Decimal("100"), coupon=Coupon(CouponKind.PERCENTAGE, Decimal("10")))
    assert percent.total_price == Decimal("99.00")
    flat = engine.price(Decimal("100"), coupon=Coupon(CouponKind.FLAT, Decimal("200")))
    assert flat.total_price == Decimal("0.00")


def test_sale_price_only_counts_above_minimum(engine):
    assert engine.effective_sale_price(Decimal("100"), Decimal("90")) == Decimal("0")
    assert engine.effective_sale_price(Decimal("100"), Decimal("120")) == Decimal("120")
    priced = engine.price(Decimal("100"), upstream_retail=Decimal("120"), proposed_sale=Decimal("150"))
    assert priced.sale_price == Decimal("150")


@pytest.mark.parametrize("net", [Decimal("-1"), float("nan"), None, True, "abc", float("inf")])
def test_invalid_net_prices_are_rejected(engine, net):
    with pytest.raises(ValidationError):
        engine.price(net)


def test_options_are_validated():
    with pytest.raises(ValidationError):
        PricingOptions(minimum_margin_percent=101)
    with pytest.raises(ValidationError):
        PricingOptions(special_discount_percent=-1)
    with pytest.raises(ValidationError):
        Coupon(CouponKind.PERCENTAGE, Decimal("150"))


def test_priced_rate_scales_by_room_count(engine):
    priced = engine.price(Decimal("100")).for_rooms(2)
    assert priced.total_price == Decimal("220.00")
    assert priced.net_price == Decimal("200")
    with pytest.raises(ValidationError):
        priced.for_rooms(0)
