from typing import List, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlmodel import Session
from pydantic import BaseModel, Field

from coupon_engine.core.errors import CouponNotFoundError
from coupon_engine.db.session import get_session
from coupon_engine.models.coupon import CouponType, CouponScope, ReferralType
from coupon_engine.models.user import User
from coupon_engine.routers.auth import get_current_user
from coupon_engine.services.coupon import CouponService
from coupon_engine.services.eligibility import IneligibleReason, REASON_MESSAGES, RedemptionContext
from coupon_engine.services.ledger import RedemptionLedger
from coupon_engine.services.referral import ReferralIssuer

router = APIRouter()

# All amounts are integers in paise
class EvaluateRequest(BaseModel):
    code: str = Field(min_length=1)
    orderCategory: str = Field(min_length=1)
    orderAmount: int = Field(ge=0)
    vendorId: Optional[int] = None

class RedeemRequest(EvaluateRequest):
    orderRef: str = Field(min_length=1)

class EvaluateResponse(BaseModel):
    eligible: bool
    reason: Optional[IneligibleReason] = None
    message: Optional[str] = None
    discountAmount: Optional[int] = None
    finalAmount: Optional[int] = None
    remainingUserUses: Optional[int] = None

class RedeemResponse(BaseModel):
    success: bool
    reason: Optional[IneligibleReason] = None
    message: Optional[str] = None
    discountAmount: int
    finalAmount: int
    remainingUserUses: Optional[int] = None
    replayed: bool = False

class AvailableCoupon(BaseModel):
    code: str
    name: str
    description: Optional[str] = None
    type: CouponType
    value: int
    maxDiscountAmount: Optional[int] = None
    minOrderAmount: int
    applicableFor: List[str]
    endDate: datetime
    remainingUserUses: int

class ReferralRequest(BaseModel):
    referralType: ReferralType = ReferralType.USER_GENERATED

class ReferralCoupon(BaseModel):
    id: int
    code: str
    name: str
    scope: CouponScope
    value: int
    maxDiscountAmount: Optional[int] = None
    minOrderAmount: int
    usageLimit: Optional[int] = None
    startDate: datetime
    endDate: datetime

def get_coupon_service(session: Session = Depends(get_session)) -> CouponService:
    return CouponService(session)

def get_ledger(session: Session = Depends(get_session)) -> RedemptionLedger:
    return RedemptionLedger(session)

def get_referral_issuer(session: Session = Depends(get_session)) -> ReferralIssuer:
    return ReferralIssuer(session)

def build_context(data: EvaluateRequest, user: User, order_ref: Optional[str] = None) -> RedemptionContext:
    return RedemptionContext(
        user_id=user.id,
        order_category=data.orderCategory.strip().lower(),
        order_amount=data.orderAmount,
        vendor_id=data.vendorId,
        order_ref=order_ref
    )

@router.post("/evaluate", response_model=EvaluateResponse)
def evaluate_coupon(
    data: EvaluateRequest,
    current_user: User = Depends(get_current_user),
    service: CouponService = Depends(get_coupon_service)
):
    """Preview eligibility and discount. Does not consume the coupon."""
    evaluation = service.evaluate(data.code, build_context(data, current_user))
    result = evaluation.eligibility
    if not result.eligible:
        return EvaluateResponse(eligible=False, reason=result.reason, message=result.message)

    return EvaluateResponse(
        eligible=True,
        message="Coupon is valid and you are eligible to use it",
        discountAmount=evaluation.discount.discount_amount,
        finalAmount=evaluation.discount.final_amount,
        remainingUserUses=result.remaining_user_uses
    )

@router.post("/redeem", response_model=RedeemResponse)
def redeem_coupon(
    data: RedeemRequest,
    current_user: User = Depends(get_current_user),
    ledger: RedemptionLedger = Depends(get_ledger)
):
    """Consume one use of the coupon for ``orderRef``. Safe to retry with the same ``orderRef``."""
    try:
        result = ledger.redeem(data.code, build_context(data, current_user, order_ref=data.orderRef))
    except CouponNotFoundError:
        return RedeemResponse(
            success=False,
            reason=IneligibleReason.NOT_FOUND,
            message=REASON_MESSAGES[IneligibleReason.NOT_FOUND],
            discountAmount=0,
            finalAmount=data.orderAmount
        )

    return RedeemResponse(
        success=result.success,
        reason=result.reason,
        message=result.message if not result.success else "Coupon applied successfully",
        discountAmount=result.discount_amount,
        finalAmount=result.final_amount,
        remainingUserUses=result.remaining_user_uses,
        replayed=result.replayed
    )

@router.get("/available", response_model=List[AvailableCoupon])
def get_available_coupons(
    orderCategory: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: CouponService = Depends(get_coupon_service)
):
    """Coupons the current user can still redeem."""
    return [
        AvailableCoupon(
            code=coupon.code,
            name=coupon.name,
            description=coupon.description,
            type=coupon.coupon_type,
            value=coupon.value,
            maxDiscountAmount=coupon.max_discount_amount,
            minOrderAmount=coupon.min_order_amount,
            applicableFor=coupon.applicable_for,
            endDate=coupon.end_date,
            remainingUserUses=remaining
        )
        for coupon, remaining in service.get_available_coupons(current_user.id, orderCategory)
    ]

@router.post("/referral", response_model=ReferralCoupon, status_code=201)
def generate_referral_coupon(
    data: Optional[ReferralRequest] = None,
    current_user: User = Depends(get_current_user),
    issuer: ReferralIssuer = Depends(get_referral_issuer)
):
    """Issue the caller's own referral coupon. Never for another user."""
    referral_type = data.referralType if data else ReferralType.USER_GENERATED
    coupon = issuer.issue_referral(current_user.id, referral_type)
    return ReferralCoupon(
        id=coupon.id,
        code=coupon.code,
        name=coupon.name,
        scope=coupon.scope,
        value=coupon.value,
        maxDiscountAmount=coupon.max_discount_amount,
        minOrderAmount=coupon.min_order_amount,
        usageLimit=coupon.usage_limit,
        startDate=coupon.start_date,
        endDate=coupon.end_date
    )
