# database.py
"""
SQLAlchemy database connection, session management and persistence helpers.

This module provides:
- Lazy engine configuration (Azure SQL / MS SQL Server by default, any URL via DATABASE_URL)
- Session factory and unit-of-work helpers
- Load / flush helpers that translate ORM failures into billing errors

Usage:
     from database import get_session_context

     with get_session_context() as db:
          PaymentService.confirm_payment(db, payment_id=42, actor="owner-7", clock=SystemClock())
"""
from contextlib import contextmanager
from typing import Generator, Optional, Type, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

import config
from errors import ConcurrencyError, NotFoundError
from models.base import Base, VersionedRecord

T = TypeVar("T", bound=Base)

_engine: Optional[Engine] = None

# Session factory, bound on first use of get_engine()
SessionLocal = sessionmaker(
     autocommit=False,
     autoflush=False,
     expire_on_commit=False,
)


def get_engine(url: Optional[str] = None) -> Engine:
     """
     Create (once) and return the SQLAlchemy engine.

     Args:
          url: Optional database URL; defaults to config.DATABASE_URL
     """
     global _engine
     if _engine is None or url is not None:
          _engine = create_engine(
               url or config.DATABASE_URL,
               pool_pre_ping=True,
               pool_recycle=1800,  # Recycle connections after 30 minutes
               echo=config.SQL_ECHO,
          )
          SessionLocal.configure(bind=_engine)
     return _engine


@contextmanager
def get_session_context() -> Generator[Session, None, None]:
     """
     Context manager for one unit of work (for batch jobs and schedulers).

     Usage:
          with get_session_context() as db:
               InvoiceService.run_overdue_sweep(db, org_id=1, clock=SystemClock())

     Yields:
          Session: SQLAlchemy database session
     """
     get_engine()
     session = SessionLocal()
     try:
          yield session
          session.commit()
     except Exception:
          session.rollback()
          raise
     finally:
          session.close()


def init_db(engine: Optional[Engine] = None) -> None:
     """
     Create all tables defined in the models if they don't exist.
     For production, use Alembic migrations instead.
     """
     import models  # noqa: F401  (registers every mapper)
     Base.metadata.create_all(bind=engine or get_engine())


def load(db: Session, model: Type[T], entity_id, include_deleted: bool = False) -> T:
     """
     Load an aggregate by primary key.

     Raises:
          NotFoundError: if the row does not exist or is soft-deleted
     """
     entity = db.get(model, entity_id)
     if entity is None or (not include_deleted and getattr(entity, "is_deleted", False)):
          raise NotFoundError(model.__name__, entity_id)
     return entity


def load_versioned(db: Session, model: Type[T], entity_id, expected_version: Optional[int] = None) -> T:
     """
     Load an aggregate and check the caller's version token against the stored one.

     Raises:
          NotFoundError: if the row does not exist
          ConcurrencyError: if expected_version is given and does not match
     """
     entity = load(db, model, entity_id)
     if expected_version is not None and entity.row_version != expected_version:
          raise ConcurrencyError(model.__name__, entity_id, expected_version, entity.row_version)
     return entity


def read_versioned(db: Session, model: Type[T], entity_id) -> VersionedRecord[T]:
     """Load an aggregate wrapped with the version token the caller must send back."""
     return VersionedRecord.of(load(db, model, entity_id))


def flush_changes(db: Session, entity_name: str = "Record", entity_id=None) -> None:
     """
     Flush pending writes, enforcing the row version check.

     Raises:
          ConcurrencyError: if another transaction updated a versioned row first
     """
     try:
          db.flush()
     except StaleDataError as exc:
          raise ConcurrencyError(entity_name, entity_id) from exc


def insert_unique(db: Session, entity: T, entity_name: str = "Record", entity_key=None) -> None:
     """
     Add and flush a new row inside a savepoint.

     A unique-key violation means a concurrent writer inserted the same key first; the
     savepoint is rolled back, leaving the caller's transaction usable.

     Raises:
          ConcurrencyError: if the insert hits a unique constraint
     """
     try:
          with db.begin_nested():
               db.add(entity)
               db.flush()
     except IntegrityError as exc:
          raise ConcurrencyError(entity_name, entity_key) from exc
