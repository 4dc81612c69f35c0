# backend/meetai/core/db.py
from __future__ import annotations

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from meetai.core.settings import get_settings


def _build_engine():
    url = get_settings().DATABASE_URL
    common_kwargs = {
        "future": True,
        "pool_pre_ping": True,
        "pool_recycle": 1800,  # keep pool fresh
    }
    if url.startswith("sqlite"):
        # Required for SQLite with multi-threaded FastAPI
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            **common_kwargs,
        )
    return create_engine(url, **common_kwargs)


engine = _build_engine()

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


def init_db() -> None:
    """Auto-create tables in dev; Alembic owns the schema everywhere else."""
    from meetai.models import Base

    if get_settings().APP_ENV == "dev":
        Base.metadata.create_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


__all__ = ["SessionLocal", "engine", "get_db", "init_db"]
