"""Database configuration and session management."""

from contextlib import contextmanager
from datetime import datetime, timezone
from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import Session, sessionmaker
from common import config
from common.exceptions import RecursoError, TransactionError
import logging

logger = logging.getLogger(__name__)

engine = create_engine(config.DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for FastAPI route handlers."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def utcnow() -> datetime:
    """Naive UTC timestamp with microsecond resolution."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@contextmanager
def transaction(db: Session):
    """
    Unit of work around one multi-step mutation.

    Commits on success. On failure everything written inside the block is rolled
    back; domain errors propagate unchanged, anything else becomes TransactionError.
    """
    try:
        yield db
        db.commit()
    except RecursoError:
        db.rollback()
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Transaction rolled back: {e}", exc_info=True)
        raise TransactionError(str(e)) from e
