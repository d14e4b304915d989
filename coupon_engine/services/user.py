from typing import Optional
from sqlmodel import Session, select, func
from coupon_engine.models.user import User
from coupon_engine.models.order import Booking, BookingStatus

class UserService:
    """Read-only view of the user directory and booking history."""

    def __init__(self, session: Session):
        self.session = session

    def get_user_by_id(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def has_completed_orders(self, user_id: int) -> bool:
        completed = self.session.exec(
            select(func.count(Booking.id)).where(
                Booking.user_id == user_id,
                Booking.status == BookingStatus.COMPLETED
            )
        ).one()
        return completed > 0
