"""
VTRIA Database Configuration
SQLAlchemy engine, session factory and declarative base
"""
from sqlalchemy import create_engine, MetaData, text
from sqlalchemy.orm import declarative_base, sessionmaker
from typing import Generator
import logging
import time

from .config import settings

logger = logging.getLogger("vtria.database")


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_recycle": 3600,  # Recycle connections after 1 hour
        "pool_pre_ping": True,
    }


engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **_engine_kwargs(settings.DATABASE_URL)
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Metadata with naming convention for constraints
Base = declarative_base(metadata=MetaData(naming_convention={
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}))


def get_db() -> Generator:
    """
    Dependency function to get database session

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error(f"Database session error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind=None):
    """
    Initialize database tables

    Imports every model module so that all tables are registered with Base.
    """
    from vtria_erp import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables created successfully")


def check_db_connection(db=None) -> dict:
    """
    Check database connectivity

    Returns:
        dict with connected flag and round-trip latency in milliseconds
    """
    started = time.perf_counter()
    try:
        if db is not None:
            db.execute(text("SELECT 1"))
        else:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        return {
            "connected": True,
            "latency_ms": round((time.perf_counter() - started) * 1000, 2)
        }
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return {"connected": False, "latency_ms": None, "error": str(e)}
