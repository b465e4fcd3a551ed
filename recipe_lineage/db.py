from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker, DeclarativeBase

from .settings import settings


class Base(DeclarativeBase):
    pass


_session_factory: sessionmaker | None = None


def session_factory() -> sessionmaker:
    """Engine and sessionmaker are built on first use, from settings.database_url."""
    global _session_factory
    if _session_factory is None:
        engine = create_engine(settings.database_url, pool_pre_ping=True)
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    return _session_factory


def get_db():
    db: Session = session_factory()()
    try:
        yield db
    finally:
        db.close()
