from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from coupon_engine.db.session import build_engine, get_session
from coupon_engine.main import app
from coupon_engine.models import AdminUser, AdminRole, Coupon, CouponType, User
from coupon_engine.services.auth import AuthService


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so several threads can share one database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'coupons.db'}")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def client(engine):
    """Test client bound to the temporary database."""
    def get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make_user(name="Asha Rao", email=None, is_superuser=False):
        counter["n"] += 1
        user = User(
            name=name,
            email=email or f"user{counter['n']}@example.com",
            password_hash="not-a-real-hash",
            is_superuser=is_superuser,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_coupon(session):
    def _make_coupon(**overrides):
        now = datetime.utcnow()
        data = dict(
            code="SAVE10",
            name="Save 10%",
            coupon_type=CouponType.PERCENTAGE,
            value=10,
            start_date=now - timedelta(days=1),
            end_date=now + timedelta(days=30),
        )
        data.update(overrides)
        coupon = Coupon(**data)
        session.add(coupon)
        session.commit()
        session.refresh(coupon)
        return coupon

    return _make_coupon


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def other_user(make_user):
    return make_user(name="Ravi Kumar")


def auth_headers_for(session, user):
    token = AuthService(session).create_access_token({"sub": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(session, user):
    return auth_headers_for(session, user)


@pytest.fixture
def make_admin(session, make_user):
    def _make_admin(role=AdminRole.SUPER_ADMIN, permissions=None, vendor_id=None):
        admin = make_user(name="Admin")
        session.add(AdminUser(
            user_id=admin.id,
            role=role,
            permissions=permissions or [],
            vendor_id=vendor_id,
        ))
        session.commit()
        return admin, auth_headers_for(session, admin)

    return _make_admin
