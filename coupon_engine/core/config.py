from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    PROJECT_NAME: str = "Coupon Engine API"
    DATABASE_URL: str = "sqlite:///./coupons.db"
    SECRET_KEY: str = "supersecretkey_change_me_in_production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7 # 1 week

    LOG_LEVEL: str = "INFO"

    # SQLite waits this long for the write lock before failing the redemption
    DB_BUSY_TIMEOUT_SECONDS: float = 15.0

    # Amounts are stored in paise; the symbol is only used in messages
    CURRENCY_SYMBOL: str = "₹"

    # Referral coupon policy
    REFERRAL_DISCOUNT_PERCENT: int = 10
    REFERRAL_MAX_DISCOUNT: int = 50000  # ₹500
    REFERRAL_MIN_ORDER: int = 100000  # ₹1000
    REFERRAL_VALIDITY_DAYS: int = 90
    REFERRAL_USAGE_LIMIT: int = 10
    REFERRAL_CATEGORIES: list[str] = ["cabin"]
    REFERRAL_SUFFIX_LENGTH: int = 4
    REFERRAL_CODE_ATTEMPTS: int = 5

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
