# Import all models to register them with SQLModel
from coupon_engine.models.user import User
from coupon_engine.models.order import Booking, BookingCategory, BookingStatus
from coupon_engine.models.admin_user import AdminUser, AdminRole
from coupon_engine.models.coupon import (
    Coupon,
    CouponUsage,
    CouponRedemption,
    CouponType,
    CouponScope,
    ReferralType,
)

__all__ = [
    "User",
    "Booking",
    "BookingCategory",
    "BookingStatus",
    "AdminUser",
    "AdminRole",
    "Coupon",
    "CouponUsage",
    "CouponRedemption",
    "CouponType",
    "CouponScope",
    "ReferralType",
]
