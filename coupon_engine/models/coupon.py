from typing import List, Optional
from datetime import datetime
from sqlmodel import Field, SQLModel, Column
from sqlalchemy import JSON, DateTime, UniqueConstraint
from enum import Enum

class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"

class CouponScope(str, Enum):
    GLOBAL = "global"
    VENDOR = "vendor"
    USER_REFERRAL = "user_referral"

class ReferralType(str, Enum):
    USER_GENERATED = "user_generated"
    WELCOME_BONUS = "welcome_bonus"
    FRIEND_REFERRAL = "friend_referral"

CATEGORY_ALL = "all"


def normalize_code(code: str) -> str:
    return code.strip().upper()


class Coupon(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # Coupon Details
    code: str = Field(unique=True, index=True)  # stored upper-cased, e.g. "MONSOON10"
    name: str
    description: Optional[str] = None

    # Discount (amounts in paise)
    coupon_type: CouponType = Field(default=CouponType.PERCENTAGE)
    value: int = Field(ge=0)  # Percentage (0-100) or fixed amount
    max_discount_amount: Optional[int] = None  # Cap for percentage coupons
    min_order_amount: int = Field(default=0, ge=0)

    # Applicability
    applicable_for: List[str] = Field(default_factory=lambda: [CATEGORY_ALL], sa_column=Column(JSON))
    scope: CouponScope = Field(default=CouponScope.GLOBAL, index=True)
    vendor_id: Optional[int] = Field(default=None, index=True)

    # Referral
    is_referral_coupon: bool = Field(default=False)
    referral_type: Optional[ReferralType] = None
    generated_by: Optional[int] = Field(default=None, foreign_key="user.id", index=True)

    # Usage Limits
    usage_limit: Optional[int] = None  # Total usage limit (null = unlimited)
    usage_count: int = Field(default=0)  # Only the redemption ledger writes this
    user_usage_limit: int = Field(default=1)

    # Validity (inclusive)
    start_date: datetime = Field(sa_column=Column(DateTime, nullable=False))
    end_date: datetime = Field(sa_column=Column(DateTime, nullable=False))

    # Audience
    first_time_user_only: bool = Field(default=False)
    specific_users: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    exclude_users: List[int] = Field(default_factory=list, sa_column=Column(JSON))

    # Status
    is_active: bool = Field(default=True, index=True)

    # Audit
    created_by: Optional[int] = Field(default=None, foreign_key="user.id")
    updated_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column=Column(DateTime, nullable=False))


class CouponUsage(SQLModel, table=True):
    """Per-user running count; one row per user who has redeemed the coupon."""
    __table_args__ = (UniqueConstraint("coupon_id", "user_id", name="uq_coupon_usage_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)

    # References
    coupon_id: int = Field(foreign_key="coupon.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)

    # Usage Details
    usage_count: int = Field(default=1)
    order_ref: Optional[str] = None  # most recent order

    # Timestamp
    used_at: datetime = Field(default_factory=datetime.utcnow, sa_column=Column(DateTime, nullable=False))


class CouponRedemption(SQLModel, table=True):
    """One row per successful redemption, keyed by the caller's order reference."""
    __table_args__ = (UniqueConstraint("coupon_id", "order_ref", name="uq_coupon_redemption_order"),)

    id: Optional[int] = Field(default=None, primary_key=True)

    coupon_id: int = Field(foreign_key="coupon.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    order_ref: str

    order_amount: int
    discount_amount: int
    final_amount: int

    redeemed_at: datetime = Field(default_factory=datetime.utcnow, sa_column=Column(DateTime, nullable=False))
