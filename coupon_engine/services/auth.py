from datetime import datetime, timedelta
from typing import Optional
from sqlmodel import Session, select
from fastapi import HTTPException
from passlib.context import CryptContext
from jose import jwt

from coupon_engine.models.user import User
from coupon_engine.core.config import settings

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

class AuthService:
    def __init__(self, session: Session):
        self.session = session

    def get_password_hash(self, password: str) -> str:
        return pwd_context.hash(password)

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return pwd_context.verify(plain_password, hashed_password)

    def create_access_token(self, data: dict, expires_delta: Optional[timedelta] = None) -> str:
        to_encode = data.copy()
        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    def get_user_by_email(self, email: str) -> Optional[User]:
        # Use ilike for case-insensitive lookup
        return self.session.exec(select(User).where(User.email == email)).first() or \
               self.session.exec(select(User).where(User.email.ilike(email))).first()

    def register_user(self, email: str, password: str, name: str = None) -> User:
        if self.get_user_by_email(email):
            raise HTTPException(status_code=400, detail="Email already registered")

        user = User(
            email=email,
            name=name,
            password_hash=self.get_password_hash(password),
            is_active=True
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def authenticate_user(self, email: str, password: str) -> tuple[Optional[User], Optional[str]]:
        user = self.get_user_by_email(email)
        if not user:
            return None, "User not found. Please check your email or register a new account."
        if not self.verify_password(password, user.password_hash):
            return None, "Incorrect password. Please try again."
        if not user.is_active:
            return None, "Account is disabled."
        return user, None
