"""
Database engine and session management
"""
from typing import Generator, Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

from order_prioritization.config import settings


class Base(DeclarativeBase):
    pass


_engine: Optional[Engine] = None  # created lazily so importing never needs a DB driver
_SessionLocal: Optional[sessionmaker] = None


def _normalize_db_url(url: str) -> str:
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


def get_engine() -> Engine:
    """Get (or create) the global engine"""
    global _engine
    if _engine is None:
        url = _normalize_db_url(settings.DATABASE_URL)
        connect_args = {}
        if url.startswith("postgresql"):
            connect_args["options"] = f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"
        _engine = create_engine(
            url,
            pool_pre_ping=True,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            connect_args=connect_args,
        )
    return _engine


def get_sessionmaker() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(bind=get_engine(), autocommit=False, autoflush=False)
    return _SessionLocal


def get_db() -> Generator[Session, None, None]:
    """Yield a session per request"""
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """Create tables"""
    # Register models on Base.metadata
    from order_prioritization.models import order  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
