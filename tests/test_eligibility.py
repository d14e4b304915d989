from datetime import datetime, timedelta

import pytest

from coupon_engine.models.coupon import Coupon, CouponScope, CouponType, CouponUsage
from coupon_engine.services.eligibility import EligibilityResult, IneligibleReason, RedemptionContext, evaluate

NOW = datetime(2026, 6, 1, 12, 0, 0)


class FakeHistory:
    def __init__(self, completed=()):
        self.completed = set(completed)
        self.calls = []

    def has_completed_orders(self, user_id):
        self.calls.append(user_id)
        return user_id in self.completed


def build_coupon(**overrides):
    data = dict(
        id=1,
        code="MONSOON",
        name="Monsoon",
        coupon_type=CouponType.PERCENTAGE,
        value=10,
        min_order_amount=1000,
        applicable_for=["cabin"],
        start_date=NOW - timedelta(days=10),
        end_date=NOW + timedelta(days=10),
    )
    data.update(overrides)
    return Coupon(**data)


def build_context(**overrides):
    data = dict(user_id=7, order_category="cabin", order_amount=4000)
    data.update(overrides)
    return RedemptionContext(**data)


def check(coupon, context=None, usage=None, history=None):
    return evaluate(coupon, context or build_context(), usage, history or FakeHistory(), now=NOW)


def test_eligible_with_full_allowance():
    result = check(build_coupon(user_usage_limit=3))
    assert result.eligible
    assert result.reason is None
    assert result.remaining_user_uses == 3


def test_remaining_uses_counts_prior_redemptions():
    usage = CouponUsage(coupon_id=1, user_id=7, usage_count=2)
    result = check(build_coupon(user_usage_limit=3), usage=usage)
    assert result.eligible
    assert result.remaining_user_uses == 1


def test_inactive():
    assert check(build_coupon(is_active=False)).reason == IneligibleReason.INACTIVE


def test_expired_coupon_is_outside_window_regardless_of_other_fields():
    coupon = build_coupon(
        end_date=NOW - timedelta(days=1),
        start_date=NOW - timedelta(days=5),
        usage_limit=1,
        usage_count=1,
        exclude_users=[7],
    )
    result = check(coupon, build_context(order_category="hostel", order_amount=1))
    assert not result.eligible
    assert result.reason == IneligibleReason.OUTSIDE_WINDOW


def test_not_started_yet():
    coupon = build_coupon(start_date=NOW + timedelta(hours=1), end_date=NOW + timedelta(days=2))
    assert check(coupon).reason == IneligibleReason.OUTSIDE_WINDOW


def test_window_bounds_are_inclusive():
    assert check(build_coupon(start_date=NOW)).eligible
    assert check(build_coupon(end_date=NOW)).eligible


def test_inactive_is_reported_before_window():
    coupon = build_coupon(is_active=False, end_date=NOW - timedelta(days=1), start_date=NOW - timedelta(days=2))
    assert check(coupon).reason == IneligibleReason.INACTIVE


def test_vendor_mismatch():
    coupon = build_coupon(scope=CouponScope.VENDOR, vendor_id=11)
    assert check(coupon, build_context(vendor_id=12)).reason == IneligibleReason.WRONG_VENDOR
    assert check(coupon, build_context(vendor_id=None)).reason == IneligibleReason.WRONG_VENDOR
    assert check(coupon, build_context(vendor_id=11)).eligible


def test_vendor_id_ignored_for_global_coupons():
    assert check(build_coupon(vendor_id=11), build_context(vendor_id=99)).eligible


def test_wrong_category():
    result = check(build_coupon(), build_context(order_category="hostel"))
    assert result.reason == IneligibleReason.WRONG_CATEGORY
    assert "hostel" in result.message


def test_all_category_matches_anything():
    assert check(build_coupon(applicable_for=["all"]), build_context(order_category="hostel")).eligible


def test_below_minimum_message_shows_amount():
    result = check(build_coupon(min_order_amount=100000), build_context(order_amount=99999))
    assert result.reason == IneligibleReason.BELOW_MINIMUM
    assert result.message == "Minimum order amount is ₹1,000.00"


def test_minimum_is_inclusive():
    assert check(build_coupon(min_order_amount=4000), build_context(order_amount=4000)).eligible


def test_usage_exhausted():
    assert check(build_coupon(usage_limit=5, usage_count=5)).reason == IneligibleReason.USAGE_EXHAUSTED
    assert check(build_coupon(usage_limit=5, usage_count=4)).eligible


def test_unlimited_usage():
    assert check(build_coupon(usage_limit=None, usage_count=10_000)).eligible


def test_excluded_user_is_denied_even_if_allow_listed():
    coupon = build_coupon(exclude_users=[7], specific_users=[7])
    assert check(coupon).reason == IneligibleReason.USER_EXCLUDED


def test_allow_list():
    coupon = build_coupon(specific_users=[1, 2])
    assert check(coupon).reason == IneligibleReason.NOT_IN_ALLOWLIST
    assert check(coupon, build_context(user_id=2)).eligible


def test_first_time_only():
    coupon = build_coupon(first_time_user_only=True)
    assert check(coupon, history=FakeHistory(completed=[7])).reason == IneligibleReason.NOT_FIRST_TIME
    assert check(coupon, history=FakeHistory(completed=[8])).eligible


def test_history_not_consulted_unless_first_time_only():
    history = FakeHistory(completed=[7])
    assert check(build_coupon(), history=history).eligible
    assert history.calls == []


def test_user_limit_reached():
    usage = CouponUsage(coupon_id=1, user_id=7, usage_count=1)
    result = check(build_coupon(user_usage_limit=1), usage=usage)
    assert result.reason == IneligibleReason.USER_LIMIT_REACHED
    assert "1 time(s)" in result.message


@pytest.mark.parametrize("reason", list(IneligibleReason))
def test_every_reason_has_a_message(reason):
    assert EligibilityResult.deny(reason).message
