from dataclasses import dataclass
from coupon_engine.models.coupon import Coupon, CouponType

@dataclass(frozen=True)
class DiscountBreakdown:
    discount_amount: int
    final_amount: int

def compute_discount(coupon: Coupon, order_amount: int) -> DiscountBreakdown:
    """Discount for an order amount in paise. Always rounds down."""
    if coupon.coupon_type == CouponType.PERCENTAGE:
        percent = min(max(coupon.value, 0), 100)
        discount_amount = (order_amount * percent) // 100
        if coupon.max_discount_amount is not None:
            discount_amount = min(discount_amount, coupon.max_discount_amount)
    else:  # FIXED
        discount_amount = min(coupon.value, order_amount)

    discount_amount = max(discount_amount, 0)
    return DiscountBreakdown(
        discount_amount=discount_amount,
        final_amount=max(0, order_amount - discount_amount),
    )
