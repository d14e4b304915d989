import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime
from sqlmodel import Session, select, func, update
from sqlalchemy import exists, or_, desc

from coupon_engine.core.errors import CouponValidationError, CouponNotFoundError, CouponInUseError
from coupon_engine.models.coupon import (
    Coupon, CouponUsage, CouponRedemption, CouponScope, CouponType, normalize_code, CATEGORY_ALL
)
from coupon_engine.models.user import User
from coupon_engine.services.discount import DiscountBreakdown, compute_discount
from coupon_engine.services.eligibility import (
    EligibilityResult, IneligibleReason, OrderHistory, RedemptionContext, evaluate
)
from coupon_engine.services.user import UserService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponEvaluation:
    eligibility: EligibilityResult
    coupon: Optional[Coupon] = None
    discount: Optional[DiscountBreakdown] = None


class CouponService:
    """Coupon store: lookups, read-only evaluation and administrative edits.

    Usage counters are never written here; see ``RedemptionLedger``.
    """

    def __init__(self, session: Session, order_history: Optional[OrderHistory] = None):
        self.session = session
        self.order_history = order_history or UserService(session)

    # Lookups

    def get_coupon(self, coupon_id: int) -> Coupon:
        coupon = self.session.get(Coupon, coupon_id)
        if not coupon:
            raise CouponNotFoundError("Coupon not found")
        return coupon

    def get_coupon_by_code(self, code: str) -> Optional[Coupon]:
        if not code or not code.strip():
            raise CouponValidationError("Please provide a coupon code")
        return self.session.exec(
            select(Coupon)
            .where(Coupon.code == normalize_code(code))
            .execution_options(populate_existing=True)
        ).first()

    def get_user_usage(self, coupon_id: int, user_id: int) -> Optional[CouponUsage]:
        return self.session.exec(
            select(CouponUsage)
            .where(CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id)
            .execution_options(populate_existing=True)
        ).first()

    def get_redemption(self, coupon_id: int, order_ref: str) -> Optional[CouponRedemption]:
        return self.session.exec(
            select(CouponRedemption).where(
                CouponRedemption.coupon_id == coupon_id,
                CouponRedemption.order_ref == order_ref
            )
        ).first()

    # Evaluation

    def check(self, coupon: Coupon, context: RedemptionContext, now: Optional[datetime] = None) -> EligibilityResult:
        usage = self.get_user_usage(coupon.id, context.user_id)
        return evaluate(coupon, context, usage, self.order_history, now=now)

    def evaluate(self, code: str, context: RedemptionContext, now: Optional[datetime] = None) -> CouponEvaluation:
        """Preview eligibility and discount without consuming anything."""
        coupon = self.get_coupon_by_code(code)
        if not coupon:
            return CouponEvaluation(eligibility=EligibilityResult.deny(IneligibleReason.NOT_FOUND))

        result = self.check(coupon, context, now=now)
        if not result.eligible:
            return CouponEvaluation(eligibility=result, coupon=coupon)
        return CouponEvaluation(
            eligibility=result,
            coupon=coupon,
            discount=compute_discount(coupon, context.order_amount),
        )

    def get_available_coupons(
        self, user_id: int, order_category: Optional[str] = None, now: Optional[datetime] = None
    ) -> List[Tuple[Coupon, int]]:
        """Active, in-window coupons the user can still redeem, with remaining uses."""
        now = now or datetime.utcnow()
        candidates = self.session.exec(
            select(Coupon).where(
                Coupon.is_active == True,
                Coupon.start_date <= now,
                Coupon.end_date >= now
            ).order_by(desc(Coupon.created_at))
        ).all()

        available = []
        for coupon in candidates:
            categories = coupon.applicable_for or [CATEGORY_ALL]
            # Amount and vendor are unknown here, so those checks pass trivially
            context = RedemptionContext(
                user_id=user_id,
                order_category=order_category or categories[0],
                order_amount=coupon.min_order_amount,
                vendor_id=coupon.vendor_id,
            )
            result = self.check(coupon, context, now=now)
            if result.eligible:
                available.append((coupon, result.remaining_user_uses))
        return available

    # Administration

    def list_coupons(
        self,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        coupon_type: Optional[CouponType] = None,
        scope: Optional[CouponScope] = None,
        category: Optional[str] = None,
        is_active: Optional[bool] = None,
        vendor_id: Optional[int] = None,
    ) -> Tuple[List[Coupon], int]:
        query = select(Coupon)

        if search:
            query = query.where(
                or_(
                    Coupon.code.ilike(f"%{search}%"),
                    Coupon.name.ilike(f"%{search}%")
                )
            )
        # Vendor managers only see global coupons and their own
        if vendor_id is not None:
            query = query.where(or_(Coupon.vendor_id == vendor_id, Coupon.scope == CouponScope.GLOBAL))
        if coupon_type:
            query = query.where(Coupon.coupon_type == coupon_type)
        if scope:
            query = query.where(Coupon.scope == scope)
        if is_active is not None:
            query = query.where(Coupon.is_active == is_active)

        offset = (page - 1) * limit
        query = query.order_by(desc(Coupon.created_at), desc(Coupon.id))

        if category:
            # applicable_for is a JSON column, filtered here to stay portable
            coupons = [c for c in self.session.exec(query).all() if category in (c.applicable_for or [])]
            return coupons[offset:offset + limit], len(coupons)

        total = self.session.exec(query.with_only_columns(func.count(Coupon.id)).order_by(None)).first() or 0
        coupons = self.session.exec(query.offset(offset).limit(limit)).all()
        return coupons, total

    def create_coupon(self, data: Dict[str, Any], created_by: int, vendor_id: Optional[int] = None) -> Coupon:
        data = dict(data)
        data["code"] = normalize_code(data["code"])
        if vendor_id is not None:
            data["scope"] = CouponScope.VENDOR
            data["vendor_id"] = vendor_id

        self._validate(data)

        existing = self.session.exec(select(Coupon).where(Coupon.code == data["code"])).first()
        if existing:
            raise CouponValidationError("Coupon code already exists")

        coupon = Coupon(**data, created_by=created_by, usage_count=0)
        self.session.add(coupon)
        self.session.commit()
        self.session.refresh(coupon)
        logger.info("Coupon %s created by user %s", coupon.code, created_by)
        return coupon

    def update_coupon(self, coupon_id: int, data: Dict[str, Any], updated_by: int) -> Coupon:
        coupon = self.get_coupon(coupon_id)

        merged = coupon.model_dump()
        merged.update(data)
        self._validate(merged)

        violation = self._limit_violation(coupon_id, data)
        if violation:
            raise CouponValidationError(violation)

        # Limits are re-checked in the WHERE clause against concurrent redemptions
        updated = self.session.exec(
            update(Coupon)
            .where(Coupon.id == coupon_id, *self._limit_guards(coupon_id, data))
            .values(**data, updated_by=updated_by, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if updated.rowcount != 1:
            self.session.rollback()
            raise CouponValidationError(
                self._limit_violation(coupon_id, data) or "Coupon usage changed while updating, please retry"
            )

        self.session.commit()
        self.session.refresh(coupon)
        logger.info("Coupon %s updated by user %s: %s", coupon.code, updated_by, sorted(data))
        return coupon

    def disable_coupon(self, coupon_id: int, updated_by: int) -> Coupon:
        return self.update_coupon(coupon_id, {"is_active": False}, updated_by)

    def delete_coupon(self, coupon_id: int) -> None:
        coupon = self.get_coupon(coupon_id)
        redeemed = self.session.exec(
            select(func.count(CouponRedemption.id)).where(CouponRedemption.coupon_id == coupon.id)
        ).one()
        if redeemed or coupon.usage_count:
            raise CouponInUseError()

        self.session.delete(coupon)
        self.session.commit()
        logger.info("Coupon %s deleted", coupon.code)

    def get_usage(self, coupon_id: int) -> Tuple[Coupon, List[CouponUsage], List[CouponRedemption]]:
        coupon = self.get_coupon(coupon_id)
        usages = self.session.exec(
            select(CouponUsage).where(CouponUsage.coupon_id == coupon.id).order_by(CouponUsage.used_at)
        ).all()
        redemptions = self.session.exec(
            select(CouponRedemption)
            .where(CouponRedemption.coupon_id == coupon.id)
            .order_by(CouponRedemption.redeemed_at)
        ).all()
        return coupon, usages, redemptions

    def _limit_guards(self, coupon_id: int, data: Dict[str, Any]) -> List[Any]:
        guards = []
        if data.get("usage_limit") is not None:
            guards.append(Coupon.usage_count <= data["usage_limit"])
        if data.get("user_usage_limit") is not None:
            guards.append(~exists().where(
                CouponUsage.coupon_id == coupon_id,
                CouponUsage.usage_count > data["user_usage_limit"]
            ))
        return guards

    def _limit_violation(self, coupon_id: int, data: Dict[str, Any]) -> Optional[str]:
        """Message for a limit that would fall below usage already recorded, if any."""
        usage_limit = data.get("usage_limit")
        if usage_limit is not None:
            used = self.session.exec(select(Coupon.usage_count).where(Coupon.id == coupon_id)).one()
            if used > usage_limit:
                return f"Usage limit cannot be lower than the current usage count ({used})"

        user_usage_limit = data.get("user_usage_limit")
        if user_usage_limit is not None:
            highest = self.session.exec(
                select(func.max(CouponUsage.usage_count)).where(CouponUsage.coupon_id == coupon_id)
            ).one()
            if highest is not None and highest > user_usage_limit:
                return f"Per-user limit cannot be lower than a user's current usage ({highest})"
        return None

    def _validate(self, data: Dict[str, Any]) -> None:
        if data["start_date"] >= data["end_date"]:
            raise CouponValidationError("End date must be after start date")

        if data.get("scope") == CouponScope.VENDOR and data.get("vendor_id") is None:
            raise CouponValidationError("Vendor coupons require a vendor")

        if data.get("user_usage_limit") is not None and data["user_usage_limit"] < 1:
            raise CouponValidationError("Per-user limit must be at least 1")

        for field, label in (("specific_users", "selected"), ("exclude_users", "excluded")):
            user_ids = set(data.get(field) or [])
            if not user_ids:
                continue
            found = self.session.exec(select(func.count(User.id)).where(User.id.in_(user_ids))).one()
            if found != len(user_ids):
                raise CouponValidationError(f"Some {label} users are invalid")
