from datetime import datetime, timedelta

import pytest
from sqlmodel import select

from coupon_engine.core.config import settings
from coupon_engine.core.errors import CouponValidationError, DuplicateReferralError
from coupon_engine.models import Coupon, CouponScope, CouponType, ReferralType
from coupon_engine.services.eligibility import IneligibleReason, RedemptionContext
from coupon_engine.services.ledger import RedemptionLedger
from coupon_engine.services.referral import ReferralIssuer


def test_issue_referral_applies_policy(session, make_user):
    user = make_user(name="Asha  Rao")
    now = datetime(2026, 3, 1, 9, 30)

    coupon = ReferralIssuer(session).issue_referral(user.id, now=now)

    assert coupon.code.startswith("ASHARAO")
    assert len(coupon.code) == len("ASHARAO") + settings.REFERRAL_SUFFIX_LENGTH
    assert coupon.coupon_type == CouponType.PERCENTAGE
    assert coupon.value == settings.REFERRAL_DISCOUNT_PERCENT
    assert coupon.max_discount_amount == settings.REFERRAL_MAX_DISCOUNT
    assert coupon.min_order_amount == settings.REFERRAL_MIN_ORDER
    assert coupon.scope == CouponScope.USER_REFERRAL
    assert coupon.is_referral_coupon
    assert coupon.referral_type == ReferralType.USER_GENERATED
    assert coupon.generated_by == user.id
    assert coupon.user_usage_limit == 1
    assert coupon.usage_limit == settings.REFERRAL_USAGE_LIMIT
    assert coupon.start_date == now
    assert coupon.end_date == now + timedelta(days=settings.REFERRAL_VALIDITY_DAYS)
    assert coupon.exclude_users == [user.id]


def test_code_prefix_drops_punctuation_and_falls_back(session):
    issuer = ReferralIssuer(session)
    assert issuer.generate_code("d'Souza  Jr.")[:-settings.REFERRAL_SUFFIX_LENGTH] == "DSOUZAJR"
    assert issuer.generate_code(None)[:-settings.REFERRAL_SUFFIX_LENGTH] == "USER"


def test_second_active_referral_is_refused(session, user):
    issuer = ReferralIssuer(session)
    issuer.issue_referral(user.id)

    with pytest.raises(DuplicateReferralError):
        issuer.issue_referral(user.id, ReferralType.FRIEND_REFERRAL)


def test_new_referral_allowed_after_expiry(session, user):
    issuer = ReferralIssuer(session)
    first = issuer.issue_referral(user.id, now=datetime.utcnow() - timedelta(days=settings.REFERRAL_VALIDITY_DAYS + 1))

    second = issuer.issue_referral(user.id)

    assert second.id != first.id


def test_new_referral_allowed_after_disable(session, user):
    issuer = ReferralIssuer(session)
    first = issuer.issue_referral(user.id)
    first.is_active = False
    session.add(first)
    session.commit()

    assert issuer.issue_referral(user.id).id != first.id


def test_collision_regenerates_code(session, make_coupon, user, monkeypatch):
    make_coupon(code="ASHARAOAAAA")
    codes = iter(["ASHARAOAAAA", "ASHARAOBBBB"])
    monkeypatch.setattr(ReferralIssuer, "generate_code", lambda self, name: next(codes))

    coupon = ReferralIssuer(session).issue_referral(user.id)

    assert coupon.code == "ASHARAOBBBB"
    assert len(session.exec(select(Coupon)).all()) == 2


def test_gives_up_after_repeated_collisions(session, make_coupon, user, monkeypatch):
    make_coupon(code="TAKEN")
    monkeypatch.setattr(ReferralIssuer, "generate_code", lambda self, name: "TAKEN")

    with pytest.raises(CouponValidationError):
        ReferralIssuer(session).issue_referral(user.id)


def test_owner_cannot_redeem_own_referral(session, user, other_user):
    coupon = ReferralIssuer(session).issue_referral(user.id)
    ledger = RedemptionLedger(session)

    def context_for(u, ref):
        return RedemptionContext(user_id=u.id, order_category="cabin", order_amount=200000, order_ref=ref)

    assert ledger.redeem(coupon.code, context_for(user, "BK-1")).reason == IneligibleReason.USER_EXCLUDED
    friend = ledger.redeem(coupon.code, context_for(other_user, "BK-2"))
    assert friend.success
    assert friend.discount_amount == 20000


def test_code_prefix_keeps_accented_letters(session):
    code = ReferralIssuer(session).generate_code("José María")
    assert code[:-settings.REFERRAL_SUFFIX_LENGTH] == "JOSÉMARÍA"
