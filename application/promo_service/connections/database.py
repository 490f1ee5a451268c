"""
SQLAlchemy ORM Database Configuration
Write and read engines with built-in pooling, session factories and
transaction helpers used by repositories and FastAPI dependencies.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker, Session

# Logger
from promo_service.logging.utils import get_app_logger
logger = get_app_logger("promo_service.database")

# Settings
from promo_service.config.settings import PromoConfigs
configs = PromoConfigs()


def normalize_url(url: str) -> str:
    # psycopg3 driver for plain postgresql:// URLs
    if url and url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def build_engine(url: str):
    if url.startswith("sqlite"):
        sqlite_engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30}, echo=False)

        # SQLite: take the write lock at BEGIN so concurrent writers queue on the busy timeout
        @event.listens_for(sqlite_engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(sqlite_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return sqlite_engine
    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=False,
        connect_args={
            "keepalives_idle": 600,
            "keepalives_interval": 30,
            "keepalives_count": 3
        }
    )


DATABASE_URL = normalize_url(configs.DATABASE_URL)
DATABASE_READ_URL = normalize_url(configs.DATABASE_READ_URL)

# Base class for ORM models
Base = declarative_base()

engine = build_engine(DATABASE_URL)
read_engine = build_engine(DATABASE_READ_URL) if DATABASE_READ_URL != DATABASE_URL else engine

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
ReadSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=read_engine)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency for write sessions; the caller commits."""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_read_db() -> Generator[Session, None, None]:
    """FastAPI dependency for read-only sessions."""
    db = ReadSessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_session(read_only: bool = False):
    """
    Session with transaction management for service-layer work.
    Commits on success, rolls back on any exception.
    """
    session_class = ReadSessionLocal if read_only else SessionLocal
    db = session_class()
    try:
        yield db
        if not read_only:
            db.commit()
    except Exception:
        if not read_only:
            db.rollback()
        raise
    finally:
        db.close()


def create_tables():
    # models must be imported so their tables register on Base.metadata
    from promo_service.models import promotions  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("database_tables_created")


def close_db_pool():
    engine.dispose()
    if read_engine is not engine:
        read_engine.dispose()
