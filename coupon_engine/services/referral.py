import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Optional
from sqlmodel import Session, select
from sqlalchemy.exc import IntegrityError

from coupon_engine.core.config import settings
from coupon_engine.core.errors import CouponNotFoundError, CouponValidationError, DuplicateReferralError
from coupon_engine.models.coupon import Coupon, CouponScope, CouponType, ReferralType
from coupon_engine.models.user import User

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


class ReferralIssuer:
    def __init__(self, session: Session):
        self.session = session

    def get_active_referral(self, user_id: int, now: Optional[datetime] = None) -> Optional[Coupon]:
        now = now or datetime.utcnow()
        return self.session.exec(
            select(Coupon).where(
                Coupon.generated_by == user_id,
                Coupon.is_referral_coupon == True,
                Coupon.is_active == True,
                Coupon.end_date >= now
            )
        ).first()

    def generate_code(self, display_name: Optional[str]) -> str:
        prefix = "".join(ch for ch in display_name or "" if ch.isalnum()).upper() or "USER"
        suffix = "".join(secrets.choice(CODE_ALPHABET) for _ in range(settings.REFERRAL_SUFFIX_LENGTH))
        return f"{prefix}{suffix}"

    def issue_referral(
        self,
        user_id: int,
        referral_type: ReferralType = ReferralType.USER_GENERATED,
        now: Optional[datetime] = None
    ) -> Coupon:
        now = now or datetime.utcnow()
        user = self.session.get(User, user_id)
        if not user:
            raise CouponNotFoundError("User not found")

        if self.get_active_referral(user_id, now=now):
            raise DuplicateReferralError()

        for _ in range(settings.REFERRAL_CODE_ATTEMPTS):
            code = self.generate_code(user.name)
            if self.session.exec(select(Coupon.id).where(Coupon.code == code)).first() is not None:
                logger.info("Referral code %s already taken, regenerating", code)
                continue

            coupon = Coupon(
                code=code,
                name=f"{user.name or 'Your friend'}'s Referral Discount",
                description="Special discount for referred friends",
                coupon_type=CouponType.PERCENTAGE,
                value=settings.REFERRAL_DISCOUNT_PERCENT,
                max_discount_amount=settings.REFERRAL_MAX_DISCOUNT,
                min_order_amount=settings.REFERRAL_MIN_ORDER,
                applicable_for=list(settings.REFERRAL_CATEGORIES),
                scope=CouponScope.USER_REFERRAL,
                is_referral_coupon=True,
                referral_type=referral_type,
                generated_by=user_id,
                usage_limit=settings.REFERRAL_USAGE_LIMIT,
                user_usage_limit=1,
                start_date=now,
                end_date=now + timedelta(days=settings.REFERRAL_VALIDITY_DAYS),
                exclude_users=[user_id],  # the owner shares it, never redeems it
                created_by=user_id,
            )
            self.session.add(coupon)
            try:
                self.session.commit()
            except IntegrityError:
                # Lost the race for this code to a concurrent insert
                self.session.rollback()
                logger.info("Referral code %s collided on insert, regenerating", code)
                continue

            self.session.refresh(coupon)
            logger.info("Issued referral coupon %s for user %s", coupon.code, user_id)
            return coupon

        raise CouponValidationError("Could not generate a unique referral code, please try again")
