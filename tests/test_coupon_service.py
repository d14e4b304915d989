import pytest

from coupon_engine.core.errors import CouponValidationError
from coupon_engine.services.coupon import CouponService
from coupon_engine.services.eligibility import RedemptionContext
from coupon_engine.services.ledger import RedemptionLedger


def redeem_times(session, user, count):
    ledger = RedemptionLedger(session)
    for i in range(count):
        context = RedemptionContext(user_id=user.id, order_category="cabin", order_amount=4000, order_ref=f"BK-{i}")
        assert ledger.redeem("SAVE10", context).success


def test_limit_update_is_guarded_in_the_write(session, make_coupon, user, monkeypatch):
    coupon = make_coupon(usage_limit=None, user_usage_limit=5)
    redeem_times(session, user, 2)
    # Skip the up-front check so only the conditional UPDATE stands in the way
    monkeypatch.setattr(CouponService, "_limit_violation", lambda self, coupon_id, data: None)

    with pytest.raises(CouponValidationError) as exc_info:
        CouponService(session).update_coupon(coupon.id, {"usage_limit": 1}, updated_by=user.id)

    assert exc_info.value.detail == "Coupon usage changed while updating, please retry"
    session.refresh(coupon)
    assert coupon.usage_limit is None
    assert coupon.usage_count == 2


def test_per_user_limit_update_is_guarded_in_the_write(session, make_coupon, user, monkeypatch):
    coupon = make_coupon(usage_limit=None, user_usage_limit=3)
    redeem_times(session, user, 2)
    monkeypatch.setattr(CouponService, "_limit_violation", lambda self, coupon_id, data: None)

    with pytest.raises(CouponValidationError):
        CouponService(session).update_coupon(coupon.id, {"user_usage_limit": 1}, updated_by=user.id)

    session.refresh(coupon)
    assert coupon.user_usage_limit == 3


def test_limit_update_at_current_usage_is_allowed(session, make_coupon, user):
    coupon = make_coupon(usage_limit=None, user_usage_limit=2)
    redeem_times(session, user, 2)

    updated = CouponService(session).update_coupon(
        coupon.id, {"usage_limit": 2, "user_usage_limit": 2}, updated_by=user.id
    )

    assert updated.usage_limit == 2
    assert updated.updated_by == user.id
