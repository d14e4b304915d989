from typing import Optional, List
from datetime import datetime
from sqlmodel import Field, SQLModel, Column
from sqlalchemy import JSON, DateTime
from enum import Enum

class AdminRole(str, Enum):
    SUPER_ADMIN = "super_admin"  # Full access
    COUPON_MANAGER = "coupon_manager"  # Manage all coupons
    VENDOR_MANAGER = "vendor_manager"  # Manage own vendor's coupons
    CUSTOMER_SUPPORT = "customer_support"  # View coupons and usage

class AdminUser(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # Link to main User table
    user_id: int = Field(foreign_key="user.id", unique=True, index=True)

    # Role & Permissions
    role: AdminRole = Field(default=AdminRole.CUSTOMER_SUPPORT)

    # Granular Permissions (list of permission strings)
    # e.g., ["coupons.read", "coupons.write", "coupons.delete", "coupons.usage"]
    permissions: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    # Set for vendor managers; their coupons are restricted to this vendor
    vendor_id: Optional[int] = None

    # Status
    is_active: bool = Field(default=True)

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_column=Column(DateTime, nullable=False))
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column=Column(DateTime, nullable=False))
