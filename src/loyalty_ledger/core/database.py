"""Database session and metadata configuration."""

from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import get_settings

Base = declarative_base()


def build_engine(database_url: str, *, statement_timeout_ms: int = 5000) -> Engine:
    """Create an engine whose statements give up instead of hanging."""

    connect_args: dict = {}
    if database_url.startswith("postgresql"):
        connect_args["options"] = f"-c statement_timeout={statement_timeout_ms}"
    elif database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = statement_timeout_ms / 1000
    return create_engine(database_url, future=True, pool_pre_ping=True, connect_args=connect_args)


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, future=True)


settings = get_settings()

engine = build_engine(settings.database_url, statement_timeout_ms=settings.db_statement_timeout_ms)
SessionLocal = build_session_factory(engine)


def get_db() -> Generator:
    """Yield a database session for request lifetime."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """Expose the session factory for work that owns its own transactions."""

    return SessionLocal
