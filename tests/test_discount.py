from datetime import datetime, timedelta

import pytest

from coupon_engine.models.coupon import Coupon, CouponType
from coupon_engine.services.discount import DiscountBreakdown, compute_discount


def build_coupon(**overrides):
    now = datetime.utcnow()
    data = dict(
        code="TEST",
        name="Test",
        coupon_type=CouponType.PERCENTAGE,
        value=10,
        max_discount_amount=500,
        min_order_amount=1000,
        start_date=now - timedelta(days=1),
        end_date=now + timedelta(days=1),
    )
    data.update(overrides)
    return Coupon(**data)


def test_percentage_below_cap():
    assert compute_discount(build_coupon(), 4000) == DiscountBreakdown(discount_amount=400, final_amount=3600)


def test_percentage_clamped_to_cap():
    assert compute_discount(build_coupon(), 6000) == DiscountBreakdown(discount_amount=500, final_amount=5500)


def test_percentage_without_cap():
    coupon = build_coupon(max_discount_amount=None, value=25)
    assert compute_discount(coupon, 10000).discount_amount == 2500


def test_percentage_rounds_down():
    coupon = build_coupon(max_discount_amount=None, value=15)
    # 15% of 999 is 149.85
    assert compute_discount(coupon, 999) == DiscountBreakdown(discount_amount=149, final_amount=850)


def test_percentage_above_hundred_is_treated_as_hundred():
    coupon = build_coupon(max_discount_amount=None, value=150)
    assert compute_discount(coupon, 2000) == DiscountBreakdown(discount_amount=2000, final_amount=0)


@pytest.mark.parametrize("coupon_type", [CouponType.PERCENTAGE, CouponType.FIXED])
def test_zero_value_gives_no_discount(coupon_type):
    coupon = build_coupon(coupon_type=coupon_type, value=0)
    assert compute_discount(coupon, 5000) == DiscountBreakdown(discount_amount=0, final_amount=5000)


def test_fixed_discount():
    coupon = build_coupon(coupon_type=CouponType.FIXED, value=750, max_discount_amount=None)
    assert compute_discount(coupon, 5000) == DiscountBreakdown(discount_amount=750, final_amount=4250)


def test_fixed_discount_never_exceeds_order():
    coupon = build_coupon(coupon_type=CouponType.FIXED, value=750, max_discount_amount=None)
    assert compute_discount(coupon, 300) == DiscountBreakdown(discount_amount=300, final_amount=0)


def test_same_inputs_same_output():
    coupon = build_coupon(value=7, max_discount_amount=None)
    assert compute_discount(coupon, 12345) == compute_discount(coupon, 12345)
