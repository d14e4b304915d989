from typing import List, Optional, Literal
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session, select
from pydantic import BaseModel, Field, field_validator

from coupon_engine.db.session import get_session
from coupon_engine.models.user import User
from coupon_engine.models.admin_user import AdminUser, AdminRole
from coupon_engine.models.coupon import Coupon, CouponType, CouponScope
from coupon_engine.routers.auth import get_current_user
from coupon_engine.services.coupon import CouponService
from coupon_engine.services.ledger import RedemptionLedger

router = APIRouter()

Category = Literal["cabin", "hostel", "all"]

ROLE_PERMISSIONS = {
    AdminRole.COUPON_MANAGER: {"coupons.read", "coupons.write", "coupons.delete", "coupons.usage"},
    AdminRole.VENDOR_MANAGER: {"coupons.read", "coupons.write"},
    AdminRole.CUSTOMER_SUPPORT: {"coupons.read"},
}

def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

# Pydantic models for requests (amounts in paise)
class CouponCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1)
    description: Optional[str] = None
    coupon_type: CouponType
    value: int = Field(ge=0)
    max_discount_amount: Optional[int] = Field(default=None, ge=0)
    min_order_amount: int = Field(default=0, ge=0)
    applicable_for: List[Category] = Field(default_factory=lambda: ["all"], min_length=1)
    scope: CouponScope = CouponScope.GLOBAL
    vendor_id: Optional[int] = None
    usage_limit: Optional[int] = Field(default=None, ge=0)
    user_usage_limit: int = Field(default=1, ge=1)
    start_date: datetime
    end_date: datetime
    first_time_user_only: bool = False
    specific_users: List[int] = Field(default_factory=list)
    exclude_users: List[int] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("start_date", "end_date")
    @classmethod
    def naive_utc(cls, value):
        return to_naive_utc(value)

class CouponUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    coupon_type: Optional[CouponType] = None
    value: Optional[int] = Field(default=None, ge=0)
    max_discount_amount: Optional[int] = Field(default=None, ge=0)
    min_order_amount: Optional[int] = Field(default=None, ge=0)
    applicable_for: Optional[List[Category]] = Field(default=None, min_length=1)
    scope: Optional[CouponScope] = None
    vendor_id: Optional[int] = None
    usage_limit: Optional[int] = Field(default=None, ge=0)
    user_usage_limit: Optional[int] = Field(default=None, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    first_time_user_only: Optional[bool] = None
    specific_users: Optional[List[int]] = None
    exclude_users: Optional[List[int]] = None
    is_active: Optional[bool] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def naive_utc(cls, value):
        return to_naive_utc(value)

# Fields that may legitimately be cleared with an explicit null
NULLABLE_FIELDS = {"description", "max_discount_amount", "usage_limit", "vendor_id"}

def get_admin_user(current_user: User = Depends(get_current_user), session: Session = Depends(get_session)) -> AdminUser:
    """Get admin user with permissions check"""
    admin_user = session.exec(select(AdminUser).where(AdminUser.user_id == current_user.id)).first()
    if not admin_user:
        raise HTTPException(status_code=403, detail="Admin access required")

    if not admin_user.is_active:
        raise HTTPException(status_code=403, detail="Admin account is inactive")

    return admin_user

def check_permission(admin_user: AdminUser, permission: str) -> bool:
    """Check if admin user has specific permission"""
    if admin_user.role == AdminRole.SUPER_ADMIN:
        return True
    if permission in ROLE_PERMISSIONS.get(admin_user.role, set()):
        return True
    return permission in (admin_user.permissions or [])

def require_permission(admin_user: AdminUser, permission: str):
    if not check_permission(admin_user, permission):
        raise HTTPException(status_code=403, detail="Insufficient permissions")

def vendor_restriction(admin_user: AdminUser) -> Optional[int]:
    if admin_user.role == AdminRole.VENDOR_MANAGER:
        if admin_user.vendor_id is None:
            raise HTTPException(status_code=403, detail="Vendor manager has no vendor assigned")
        return admin_user.vendor_id
    return None

def get_owned_coupon(coupon_id: int, admin_user: AdminUser, service: CouponService) -> Coupon:
    coupon = service.get_coupon(coupon_id)
    vendor_id = vendor_restriction(admin_user)
    if vendor_id is not None and coupon.vendor_id != vendor_id:
        raise HTTPException(status_code=403, detail="Coupon belongs to another vendor")
    return coupon

def get_coupon_service(session: Session = Depends(get_session)) -> CouponService:
    return CouponService(session)

def get_ledger(session: Session = Depends(get_session)) -> RedemptionLedger:
    return RedemptionLedger(session)

@router.get("/coupons")
def list_coupons(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    type: Optional[CouponType] = None,
    scope: Optional[CouponScope] = None,
    category: Optional[Category] = None,
    is_active: Optional[bool] = None,
    admin_user: AdminUser = Depends(get_admin_user),
    service: CouponService = Depends(get_coupon_service)
):
    """Get coupons with pagination and filters"""
    require_permission(admin_user, "coupons.read")

    coupons, total = service.list_coupons(
        page=page,
        limit=limit,
        search=search,
        coupon_type=type,
        scope=scope,
        category=category,
        is_active=is_active,
        vendor_id=vendor_restriction(admin_user)
    )
    return {
        "coupons": coupons,
        "total": total,
        "page": page,
        "pages": (total + limit - 1) // limit
    }

@router.post("/coupons", response_model=Coupon, status_code=201)
def create_coupon(
    data: CouponCreate,
    current_user: User = Depends(get_current_user),
    admin_user: AdminUser = Depends(get_admin_user),
    service: CouponService = Depends(get_coupon_service)
):
    require_permission(admin_user, "coupons.write")
    return service.create_coupon(data.model_dump(), created_by=current_user.id, vendor_id=vendor_restriction(admin_user))

@router.get("/coupons/{coupon_id}", response_model=Coupon)
def get_coupon(
    coupon_id: int,
    admin_user: AdminUser = Depends(get_admin_user),
    service: CouponService = Depends(get_coupon_service)
):
    require_permission(admin_user, "coupons.read")
    return get_owned_coupon(coupon_id, admin_user, service)

@router.patch("/coupons/{coupon_id}", response_model=Coupon)
def update_coupon(
    coupon_id: int,
    data: CouponUpdate,
    current_user: User = Depends(get_current_user),
    admin_user: AdminUser = Depends(get_admin_user),
    service: CouponService = Depends(get_coupon_service)
):
    require_permission(admin_user, "coupons.write")
    get_owned_coupon(coupon_id, admin_user, service)

    changes = {
        key: value for key, value in data.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_FIELDS
    }
    if vendor_restriction(admin_user) is not None:
        changes.pop("scope", None)
        changes.pop("vendor_id", None)
    return service.update_coupon(coupon_id, changes, updated_by=current_user.id)

@router.post("/coupons/{coupon_id}/disable", response_model=Coupon)
def disable_coupon(
    coupon_id: int,
    current_user: User = Depends(get_current_user),
    admin_user: AdminUser = Depends(get_admin_user),
    service: CouponService = Depends(get_coupon_service)
):
    require_permission(admin_user, "coupons.write")
    get_owned_coupon(coupon_id, admin_user, service)
    return service.disable_coupon(coupon_id, updated_by=current_user.id)

@router.delete("/coupons/{coupon_id}")
def delete_coupon(
    coupon_id: int,
    admin_user: AdminUser = Depends(get_admin_user),
    service: CouponService = Depends(get_coupon_service)
):
    require_permission(admin_user, "coupons.delete")
    get_owned_coupon(coupon_id, admin_user, service)
    service.delete_coupon(coupon_id)
    return {"message": "Coupon deleted successfully"}

@router.get("/coupons/{coupon_id}/usage")
def get_coupon_usage(
    coupon_id: int,
    admin_user: AdminUser = Depends(get_admin_user),
    service: CouponService = Depends(get_coupon_service)
):
    """Per-user usage ledger and redemption records for a coupon"""
    require_permission(admin_user, "coupons.read")
    get_owned_coupon(coupon_id, admin_user, service)

    coupon, usages, redemptions = service.get_usage(coupon_id)
    return {
        "coupon": {
            "id": coupon.id,
            "code": coupon.code,
            "usageCount": coupon.usage_count,
            "usageLimit": coupon.usage_limit,
            "userUsageLimit": coupon.user_usage_limit
        },
        "usedBy": [
            {
                "userId": usage.user_id,
                "usageCount": usage.usage_count,
                "usedAt": usage.used_at.isoformat(),
                "orderRef": usage.order_ref
            }
            for usage in usages
        ],
        "redemptions": [
            {
                "userId": redemption.user_id,
                "orderRef": redemption.order_ref,
                "orderAmount": redemption.order_amount,
                "discountAmount": redemption.discount_amount,
                "finalAmount": redemption.final_amount,
                "redeemedAt": redemption.redeemed_at.isoformat()
            }
            for redemption in redemptions
        ]
    }

@router.post("/coupons/{coupon_id}/usage/{order_ref}/release")
def release_coupon_usage(
    coupon_id: int,
    order_ref: str,
    admin_user: AdminUser = Depends(get_admin_user),
    service: CouponService = Depends(get_coupon_service),
    ledger: RedemptionLedger = Depends(get_ledger)
):
    """Give back one use for an order that did not go through. Idempotent."""
    require_permission(admin_user, "coupons.usage")
    coupon = get_owned_coupon(coupon_id, admin_user, service)

    released = ledger.release(coupon.code, order_ref)
    return {
        "released": released,
        "message": "Coupon usage released" if released else "Nothing recorded for this order"
    }
