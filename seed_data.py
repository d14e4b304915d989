from datetime import datetime, timedelta

from sqlmodel import Session, select
from coupon_engine.db.session import engine, create_db_and_tables
from coupon_engine.models import AdminUser, AdminRole, Coupon, CouponType, User
from coupon_engine.services.auth import AuthService

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "ChangeMe123!"

def seed_admin(session: Session) -> User:
    auth_service = AuthService(session)
    admin = auth_service.get_user_by_email(ADMIN_EMAIL)
    if admin:
        print(f"Admin {ADMIN_EMAIL} already exists. Skipping.")
        return admin

    admin = User(
        name="Coupon Admin",
        email=ADMIN_EMAIL,
        password_hash=auth_service.get_password_hash(ADMIN_PASSWORD),
        is_superuser=True
    )
    session.add(admin)
    session.commit()
    session.refresh(admin)

    session.add(AdminUser(user_id=admin.id, role=AdminRole.SUPER_ADMIN))
    session.commit()
    print(f"Created super admin {ADMIN_EMAIL} (password: {ADMIN_PASSWORD})")
    return admin

def seed_coupons(session: Session, created_by: int):
    existing_coupons = session.exec(select(Coupon)).all()
    if existing_coupons:
        print(f"Database already contains {len(existing_coupons)} coupons. Skipping seed.")
        return

    now = datetime.utcnow()
    print("Seeding sample coupons...")
    coupons = [
        Coupon(
            code="WELCOME10",
            name="Welcome 10%",
            description="10% off your first booking, up to ₹300.",
            coupon_type=CouponType.PERCENTAGE,
            value=10,
            max_discount_amount=30000,
            first_time_user_only=True,
            start_date=now,
            end_date=now + timedelta(days=180),
            created_by=created_by
        ),
        Coupon(
            code="CABIN500",
            name="Flat ₹500 on cabins",
            description="Flat ₹500 off cabin bookings above ₹2,500.",
            coupon_type=CouponType.FIXED,
            value=50000,
            min_order_amount=250000,
            applicable_for=["cabin"],
            usage_limit=200,
            user_usage_limit=2,
            start_date=now,
            end_date=now + timedelta(days=60),
            created_by=created_by
        ),
        Coupon(
            code="HOSTEL15",
            name="Hostel season sale",
            description="15% off hostel stays, up to ₹750.",
            coupon_type=CouponType.PERCENTAGE,
            value=15,
            max_discount_amount=75000,
            applicable_for=["hostel"],
            usage_limit=500,
            start_date=now,
            end_date=now + timedelta(days=30),
            created_by=created_by
        )
    ]

    for coupon in coupons:
        session.add(coupon)

    session.commit()
    print(f"Successfully seeded {len(coupons)} coupons!")

def seed():
    print("Creating database and tables...")
    create_db_and_tables()

    with Session(engine) as session:
        admin = seed_admin(session)
        seed_coupons(session, created_by=admin.id)

if __name__ == "__main__":
    seed()
