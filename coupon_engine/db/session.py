from sqlmodel import SQLModel, create_engine, Session
from coupon_engine.core.config import settings

def build_engine(database_url: str):
    # check_same_thread is needed for SQLite, remove for PostgreSQL
    if "sqlite" in database_url:
        connect_args = {"check_same_thread": False, "timeout": settings.DB_BUSY_TIMEOUT_SECONDS}
    else:
        connect_args = {}
    return create_engine(database_url, connect_args=connect_args)

engine = build_engine(settings.DATABASE_URL)

def get_session():
    with Session(engine) as session:
        yield session

def create_db_and_tables(bind=None):
    SQLModel.metadata.create_all(bind or engine)
