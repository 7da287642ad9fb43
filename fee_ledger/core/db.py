# fee_ledger/core/db.py

from datetime import datetime
from typing import Generator, Optional

from sqlalchemy import DateTime, create_engine, func
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from fee_ledger.core.config import settings


class Base(DeclarativeBase):
    """Declarative base shared by every fee ledger model."""


class AuditMixin:
    """Creation and modification timestamps for persisted records."""

    created_on: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(),
        comment="Timestamp when this record was created"
    )
    updated_on: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(),
        comment="Timestamp when this record was last updated"
    )


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_recycle": 3600}


engine = create_engine(settings.db_url, echo=settings.db_echo, **_engine_kwargs(settings.db_url))
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Generator[Session, None, None]:
    """Yield a request-scoped session and always close it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
