"""
Device Clinic - Database Engine & Sessions

One engine (and so one connection pool) per process. Every import request
borrows a single session from it for its whole transaction.
"""
import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import QueuePool, StaticPool

from .config import DATABASE_URL, DB_POOL_SIZE, DB_MAX_OVERFLOW

logger = logging.getLogger(__name__)

Base = declarative_base()


def make_engine(url: str = DATABASE_URL) -> Engine:
    """
    Build the engine for a database URL.

    - PostgreSQL: bounded QueuePool sized from DB_POOL_SIZE / DB_MAX_OVERFLOW
    - SQLite file: connections may be used from any worker thread
    - SQLite in-memory: one shared connection, or each session sees an empty db
    """
    if url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        return create_engine(url, **options)

    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=DB_POOL_SIZE,
        max_overflow=DB_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def make_session_factory(bind: Engine) -> sessionmaker:
    # Ingestion flushes explicitly between steps
    return sessionmaker(bind=bind, autoflush=False, autocommit=False)


engine = make_engine()
SessionLocal = make_session_factory(engine)


def get_db():
    """FastAPI dependency: one session per request, always closed."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind: Engine = engine):
    """Create any missing tables."""
    from . import models  # noqa: F401  (registers the mapped classes)

    Base.metadata.create_all(bind=bind)
    logger.info(f"🗄️ Tables ready: {', '.join(sorted(Base.metadata.tables))}")


def check_connection(bind: Engine = engine) -> bool:
    try:
        with bind.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"❌ Database unreachable ({bind.url.render_as_string(hide_password=True)}): {e}")
        return False
    return True
