from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import SQLModel, select

from coupon_engine.models import Coupon, CouponRedemption, CouponUsage


def test_timestamps_use_naive_datetime_columns():
    for table in SQLModel.metadata.sorted_tables:
        for column in table.columns:
            if column.name.endswith(("_at", "_date")):
                assert type(column.type) is DateTime, f"{table.name}.{column.name}"
                assert not column.type.timezone


def test_naive_utc_values_round_trip(session, make_coupon, user):
    start = datetime(2026, 1, 1, 10, 30)
    coupon = make_coupon(start_date=start, end_date=datetime(2026, 2, 1))
    session.add(CouponUsage(coupon_id=coupon.id, user_id=user.id, order_ref="BK-1"))
    session.add(CouponRedemption(
        coupon_id=coupon.id, user_id=user.id, order_ref="BK-1",
        order_amount=4000, discount_amount=400, final_amount=3600
    ))
    session.commit()
    session.expire_all()

    stored = session.exec(select(Coupon).where(Coupon.id == coupon.id)).one()
    assert stored.start_date == start
    assert stored.start_date.tzinfo is None
    assert session.exec(select(CouponRedemption)).one().redeemed_at.tzinfo is None
