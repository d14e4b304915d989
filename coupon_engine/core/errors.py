"""Error taxonomy for the coupon engine.

Every error is an ``HTTPException`` so services can raise them directly and
FastAPI renders them without extra handlers. Business-rule denials from the
evaluator and the ledger are returned as results, not raised.
"""
from typing import Optional
from fastapi import HTTPException, status


class CouponError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Coupon error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class CouponValidationError(CouponError):
    default_detail = "Invalid coupon request"


class CouponNotFoundError(CouponError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Invalid coupon code"


class ConcurrencyConflict(CouponError):
    """The conditional counter update matched no row."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Coupon usage changed while redeeming"

    def __init__(self, detail: Optional[str] = None, order_ref_taken: bool = False):
        self.order_ref_taken = order_ref_taken
        super().__init__(detail)


class DuplicateReferralError(CouponError):
    default_detail = "You already have an active referral coupon"


class CouponInUseError(CouponError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Coupon has redemptions and cannot be deleted; disable it instead"


class StorageUnavailableError(CouponError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Coupon storage unavailable, the redemption did not happen"
