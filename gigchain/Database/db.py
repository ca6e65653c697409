# SQLAlchemy engine + session factory using DATABASE_URL

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .. import config

DATABASE_URL = config.database_url()
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set")

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db() -> None:
    """Create missing tables (no-op for tables that already exist)."""
    from ..models import Base

    Base.metadata.create_all(bind=engine)


def get_db():
    """FastAPI dependency that yields a DB session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
