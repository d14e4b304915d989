from typing import Optional
from datetime import datetime
from sqlmodel import Field, SQLModel, Column
from sqlalchemy import DateTime
from enum import Enum

class BookingCategory(str, Enum):
    CABIN = "cabin"
    HOSTEL = "hostel"

class BookingStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class Booking(SQLModel, table=True):
    """Order history owned by the booking flows; read-only here."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)

    category: BookingCategory = Field(default=BookingCategory.CABIN)
    vendor_id: Optional[int] = None
    total_amount: int = Field(default=0)  # paise

    status: BookingStatus = Field(default=BookingStatus.PENDING)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column=Column(DateTime, nullable=False))
