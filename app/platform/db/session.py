from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.platform.config import settings


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        # Worker threads and the API threadpool share the same file
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "pool_size": 20,
        "max_overflow": 30,  # (burst capacity)
        "pool_timeout": 30,
    }


engine = create_engine(settings.DATABASE_URL, echo=False, future=True, **_engine_options(settings.DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, autoflush=False, autocommit=False)


def get_sync_db():
    """Get a database session for Celery tasks."""
    return SessionLocal()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
