from fastapi import FastAPI
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware

from coupon_engine.core.config import settings
from coupon_engine.core.logging_config import configure_logging
from coupon_engine.db.session import create_db_and_tables

# Import models to ensure they are registered with SQLModel metadata
import coupon_engine.models  # noqa: F401
from coupon_engine.routers import auth, coupons, admin

configure_logging()

@asynccontextmanager
async def lifespan(app: FastAPI):
    create_db_and_tables()
    yield

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    lifespan=lifespan,
    description="Coupon validation and redemption engine"
)

@app.get("/")
def read_root():
    return {"message": "Welcome to the Coupon Engine API. Visit /docs for Swagger UI."}

app.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(coupons.router, prefix="/api/v1/coupons", tags=["coupons"])
app.include_router(admin.router, prefix="/api/v1/admin", tags=["admin"])

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
