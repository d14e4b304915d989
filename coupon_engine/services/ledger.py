"""Redemption ledger: the only code path that changes coupon usage counters.

A redemption is one transaction made of conditional writes. The coupon row
update goes first and carries the global cap in its WHERE clause, so it also
serializes concurrent redemptions of the same coupon for the rest of the
transaction. The per-user row is bumped with its own cap in the WHERE clause,
or inserted under a unique constraint. A write that matches no row rolls the
whole transaction back instead of overwriting.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import desc, or_
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session, select, update, delete

from coupon_engine.core.errors import (
    ConcurrencyConflict, CouponNotFoundError, CouponValidationError, StorageUnavailableError
)
from coupon_engine.models.coupon import Coupon, CouponUsage, CouponRedemption
from coupon_engine.services.coupon import CouponService
from coupon_engine.services.discount import DiscountBreakdown, compute_discount
from coupon_engine.services.eligibility import (
    EligibilityResult, IneligibleReason, OrderHistory, RedemptionContext
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedemptionResult:
    success: bool
    discount_amount: int
    final_amount: int
    reason: Optional[IneligibleReason] = None
    message: Optional[str] = None
    remaining_user_uses: Optional[int] = None
    replayed: bool = False

    @classmethod
    def denied(cls, eligibility: EligibilityResult, order_amount: int) -> "RedemptionResult":
        return cls(
            success=False,
            discount_amount=0,
            final_amount=order_amount,
            reason=eligibility.reason,
            message=eligibility.message,
        )


class RedemptionLedger:
    MAX_ATTEMPTS = 2

    def __init__(self, session: Session, order_history: Optional[OrderHistory] = None):
        self.session = session
        self.coupons = CouponService(session, order_history)

    def redeem(self, code: str, context: RedemptionContext, now: Optional[datetime] = None) -> RedemptionResult:
        if not context.order_ref:
            raise CouponValidationError("An order reference is required to redeem a coupon")

        try:
            coupon = self.coupons.get_coupon_by_code(code)
            if not coupon:
                raise CouponNotFoundError()

            for attempt in range(self.MAX_ATTEMPTS):
                replay = self._replay(coupon, context)
                if replay:
                    return replay

                # Always decide on the persisted state, never on an earlier preview
                self.session.refresh(coupon)
                eligibility = self.coupons.check(coupon, context, now=now)
                if not eligibility.eligible:
                    return RedemptionResult.denied(eligibility, context.order_amount)

                discount = compute_discount(coupon, context.order_amount)
                try:
                    self._consume(coupon, context, discount, now or datetime.utcnow())
                except ConcurrencyConflict as exc:
                    logger.warning(
                        "Redemption of %s for order %s lost a race (attempt %d, order_ref_taken=%s)",
                        coupon.code, context.order_ref, attempt + 1, exc.order_ref_taken
                    )
                    continue

                logger.info(
                    "Coupon %s redeemed by user %s for order %s: discount %d",
                    coupon.code, context.user_id, context.order_ref, discount.discount_amount
                )
                return RedemptionResult(
                    success=True,
                    discount_amount=discount.discount_amount,
                    final_amount=discount.final_amount,
                    remaining_user_uses=eligibility.remaining_user_uses - 1,
                )

            replay = self._replay(coupon, context)
            if replay:
                return replay
        except OperationalError as exc:
            self.session.rollback()
            logger.exception("Storage failure while redeeming %s for order %s", code, context.order_ref)
            raise StorageUnavailableError() from exc

        return RedemptionResult.denied(
            EligibilityResult.deny(IneligibleReason.USAGE_EXHAUSTED), context.order_amount
        )

    def release(self, code: str, order_ref: str) -> bool:
        """Undo one redemption for a failed downstream order.

        Returns False when nothing is recorded for ``order_ref``, so running it
        twice releases at most once.
        """
        try:
            coupon = self.coupons.get_coupon_by_code(code)
            if not coupon:
                raise CouponNotFoundError()

            redemption = self.coupons.get_redemption(coupon.id, order_ref)
            if not redemption:
                return False
            user_id = redemption.user_id
            self.session.expunge(redemption)

            removed = self.session.exec(
                delete(CouponRedemption).where(
                    CouponRedemption.coupon_id == coupon.id,
                    CouponRedemption.order_ref == order_ref
                ).execution_options(synchronize_session=False)
            )
            if removed.rowcount != 1:
                self.session.rollback()
                return False

            self.session.exec(
                update(Coupon)
                .where(Coupon.id == coupon.id, Coupon.usage_count > 0)
                .values(usage_count=Coupon.usage_count - 1, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            self.session.exec(
                update(CouponUsage)
                .where(
                    CouponUsage.coupon_id == coupon.id,
                    CouponUsage.user_id == user_id,
                    CouponUsage.usage_count > 0
                )
                .values(usage_count=CouponUsage.usage_count - 1)
                .execution_options(synchronize_session=False)
            )
            self.session.exec(
                delete(CouponUsage).where(
                    CouponUsage.coupon_id == coupon.id,
                    CouponUsage.user_id == user_id,
                    CouponUsage.usage_count <= 0
                ).execution_options(synchronize_session=False)
            )

            # The usage row keeps pointing at the user's most recent remaining order
            latest = self.session.exec(
                select(CouponRedemption.order_ref, CouponRedemption.redeemed_at)
                .where(CouponRedemption.coupon_id == coupon.id, CouponRedemption.user_id == user_id)
                .order_by(desc(CouponRedemption.redeemed_at), desc(CouponRedemption.id))
            ).first()
            if latest is not None:
                self.session.exec(
                    update(CouponUsage)
                    .where(CouponUsage.coupon_id == coupon.id, CouponUsage.user_id == user_id)
                    .values(order_ref=latest.order_ref, used_at=latest.redeemed_at)
                    .execution_options(synchronize_session=False)
                )
            self.session.commit()
        except OperationalError as exc:
            self.session.rollback()
            logger.exception("Storage failure while releasing %s for order %s", code, order_ref)
            raise StorageUnavailableError("Coupon storage unavailable, the release did not happen") from exc

        logger.info("Released coupon %s redemption for order %s (user %s)", coupon.code, order_ref, user_id)
        return True

    def _replay(self, coupon: Coupon, context: RedemptionContext) -> Optional[RedemptionResult]:
        redemption = self.coupons.get_redemption(coupon.id, context.order_ref)
        if not redemption:
            return None
        if redemption.user_id != context.user_id:
            raise CouponValidationError("Order reference already belongs to another user")

        usage = self.coupons.get_user_usage(coupon.id, context.user_id)
        used = usage.usage_count if usage else 0
        return RedemptionResult(
            success=True,
            discount_amount=redemption.discount_amount,
            final_amount=redemption.final_amount,
            remaining_user_uses=max(coupon.user_usage_limit - used, 0),
            replayed=True,
        )

    def _consume(self, coupon: Coupon, context: RedemptionContext, discount: DiscountBreakdown, now: datetime) -> None:
        try:
            claimed = self.session.exec(
                update(Coupon)
                .where(
                    Coupon.id == coupon.id,
                    or_(Coupon.usage_limit.is_(None), Coupon.usage_count < Coupon.usage_limit)
                )
                .values(usage_count=Coupon.usage_count + 1, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount != 1:
                raise ConcurrencyConflict("Coupon usage limit reached")

            bumped = self.session.exec(
                update(CouponUsage)
                .where(
                    CouponUsage.coupon_id == coupon.id,
                    CouponUsage.user_id == context.user_id,
                    CouponUsage.usage_count < coupon.user_usage_limit
                )
                .values(usage_count=CouponUsage.usage_count + 1, used_at=now, order_ref=context.order_ref)
                .execution_options(synchronize_session=False)
            )
            if bumped.rowcount != 1:
                existing = self.session.exec(
                    select(CouponUsage.id).where(
                        CouponUsage.coupon_id == coupon.id,
                        CouponUsage.user_id == context.user_id
                    )
                ).first()
                if existing is not None:
                    raise ConcurrencyConflict("Per-user limit reached")
                self.session.add(CouponUsage(
                    coupon_id=coupon.id,
                    user_id=context.user_id,
                    usage_count=1,
                    used_at=now,
                    order_ref=context.order_ref
                ))
                try:
                    self.session.flush()
                except IntegrityError as exc:
                    raise ConcurrencyConflict("Per-user ledger entry created concurrently") from exc

            self.session.add(CouponRedemption(
                coupon_id=coupon.id,
                user_id=context.user_id,
                order_ref=context.order_ref,
                order_amount=context.order_amount,
                discount_amount=discount.discount_amount,
                final_amount=discount.final_amount,
                redeemed_at=now
            ))
            try:
                self.session.flush()
            except IntegrityError as exc:
                raise ConcurrencyConflict("Order already redeemed", order_ref_taken=True) from exc

            self.session.commit()
        except ConcurrencyConflict:
            self.session.rollback()
            raise
        except OperationalError:
            self.session.rollback()
            raise
