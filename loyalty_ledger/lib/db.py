"""
Database engine and session management using SQLAlchemy 2.x.
Provides connection pooling and session factory for the application.
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, DeclarativeBase
from contextlib import contextmanager
from typing import Any, Generator

from loyalty_ledger.lib.settings import settings


# Base class for all SQLAlchemy models
class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.
    
    SQLite connections are shared across request threads and wait on the
    database lock instead of failing immediately; other backends get a
    bounded connection pool.
    """
    kwargs: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.db_busy_timeout_seconds,
        }
    else:
        kwargs["pool_size"] = 5
        kwargs["max_overflow"] = 10
    return create_engine(database_url, **kwargs)


def build_session_factory(bind: Engine) -> sessionmaker[Session]:
    """Session factory with the application's transaction settings."""
    return sessionmaker(
        bind=bind,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


engine = build_engine(settings.database_url, echo=settings.debug)

SessionLocal = build_session_factory(engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for FastAPI routes to get a database session.
    
    Usage:
        @app.get("/example")
        def example(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI routes.
    
    Usage:
        with get_db_context() as db:
            result = CustomerStore(db).list_by_owner("shop-1")
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine | None = None) -> None:
    """
    Initialize the database by creating all tables.
    Imports the models package so every table is registered with Base.
    """
    import loyalty_ledger.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def drop_db(bind: Engine | None = None) -> None:
    """
    Drop all tables. Use with caution - for testing only.
    """
    import loyalty_ledger.models  # noqa: F401

    Base.metadata.drop_all(bind=bind or engine)
