"""Ordered eligibility checks for a coupon against one redemption context.

Nothing here writes to storage. The first failing check decides the reason,
so the order of the checks below is part of the contract.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol

from coupon_engine.core.config import settings
from coupon_engine.models.coupon import Coupon, CouponScope, CouponUsage, CATEGORY_ALL


class IneligibleReason(str, Enum):
    INACTIVE = "inactive"
    OUTSIDE_WINDOW = "outside-window"
    WRONG_VENDOR = "wrong-vendor"
    WRONG_CATEGORY = "wrong-category"
    BELOW_MINIMUM = "below-minimum"
    USAGE_EXHAUSTED = "usage-exhausted"
    USER_EXCLUDED = "user-excluded"
    NOT_IN_ALLOWLIST = "not-in-allowlist"
    NOT_FIRST_TIME = "not-first-time"
    USER_LIMIT_REACHED = "user-limit-reached"
    NOT_FOUND = "not-found"


class OrderHistory(Protocol):
    def has_completed_orders(self, user_id: int) -> bool: ...


@dataclass(frozen=True)
class RedemptionContext:
    user_id: int
    order_category: str
    order_amount: int
    vendor_id: Optional[int] = None
    order_ref: Optional[str] = None


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: Optional[IneligibleReason] = None
    message: Optional[str] = None
    remaining_user_uses: Optional[int] = None

    @classmethod
    def allow(cls, remaining_user_uses: int) -> "EligibilityResult":
        return cls(eligible=True, remaining_user_uses=remaining_user_uses)

    @classmethod
    def deny(cls, reason: IneligibleReason, message: Optional[str] = None) -> "EligibilityResult":
        return cls(eligible=False, reason=reason, message=message or REASON_MESSAGES[reason])


REASON_MESSAGES = {
    IneligibleReason.INACTIVE: "Coupon is not active",
    IneligibleReason.OUTSIDE_WINDOW: "Coupon has expired or is not yet active",
    IneligibleReason.WRONG_VENDOR: "This coupon is not valid for this property",
    IneligibleReason.WRONG_CATEGORY: "Coupon is not applicable for this booking type",
    IneligibleReason.BELOW_MINIMUM: "Order amount is below the coupon minimum",
    IneligibleReason.USAGE_EXHAUSTED: "Coupon usage limit exceeded",
    IneligibleReason.USER_EXCLUDED: "This coupon is not available for your account",
    IneligibleReason.NOT_IN_ALLOWLIST: "This coupon is only available to selected users",
    IneligibleReason.NOT_FIRST_TIME: "This coupon is only for first-time users",
    IneligibleReason.USER_LIMIT_REACHED: "You have already used this coupon the maximum allowed times",
    IneligibleReason.NOT_FOUND: "Invalid coupon code",
}


def format_amount(amount: int) -> str:
    """Render paise as a rupee string, e.g. 100000 -> '₹1,000.00'."""
    return f"{settings.CURRENCY_SYMBOL}{amount / 100:,.2f}"


def evaluate(
    coupon: Coupon,
    context: RedemptionContext,
    user_usage: Optional[CouponUsage],
    order_history: OrderHistory,
    now: Optional[datetime] = None,
) -> EligibilityResult:
    now = now or datetime.utcnow()

    if not coupon.is_active:
        return EligibilityResult.deny(IneligibleReason.INACTIVE)

    if now < coupon.start_date or now > coupon.end_date:
        return EligibilityResult.deny(IneligibleReason.OUTSIDE_WINDOW)

    if coupon.scope == CouponScope.VENDOR and context.vendor_id != coupon.vendor_id:
        return EligibilityResult.deny(IneligibleReason.WRONG_VENDOR)

    categories = set(coupon.applicable_for or [])
    if CATEGORY_ALL not in categories and context.order_category not in categories:
        return EligibilityResult.deny(
            IneligibleReason.WRONG_CATEGORY,
            f"Coupon not applicable for {context.order_category} bookings",
        )

    if context.order_amount < coupon.min_order_amount:
        return EligibilityResult.deny(
            IneligibleReason.BELOW_MINIMUM,
            f"Minimum order amount is {format_amount(coupon.min_order_amount)}",
        )

    if coupon.usage_limit is not None and coupon.usage_count >= coupon.usage_limit:
        return EligibilityResult.deny(IneligibleReason.USAGE_EXHAUSTED)

    if context.user_id in set(coupon.exclude_users or []):
        return EligibilityResult.deny(IneligibleReason.USER_EXCLUDED)

    allowed = set(coupon.specific_users or [])
    if allowed and context.user_id not in allowed:
        return EligibilityResult.deny(IneligibleReason.NOT_IN_ALLOWLIST)

    if coupon.first_time_user_only and order_history.has_completed_orders(context.user_id):
        return EligibilityResult.deny(IneligibleReason.NOT_FIRST_TIME)

    used = user_usage.usage_count if user_usage else 0
    if used >= coupon.user_usage_limit:
        return EligibilityResult.deny(
            IneligibleReason.USER_LIMIT_REACHED,
            f"You have already used this coupon {coupon.user_usage_limit} time(s)",
        )

    return EligibilityResult.allow(coupon.user_usage_limit - used)
