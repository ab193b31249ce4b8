from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from school_inventory.config import settings
from school_inventory.errors import StorageFailure

logger = logging.getLogger(__name__)

engine = create_engine(settings.database_url_normalized, pool_pre_ping=True, pool_recycle=300)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db(request: Request) -> Iterator[Session]:
    session_factory = getattr(request.app.state, 'session_factory', SessionLocal)
    with session_factory() as db:
        yield db


@contextmanager
def atomic(db: Session) -> Iterator[None]:
    """Run a write sequence that must apply completely or not at all.

    Any exception raised inside the block rolls the session back. Database
    errors surface as ``StorageFailure``; domain errors propagate unchanged.
    """
    try:
        yield
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Write sequence failed, rolled back')
        raise StorageFailure() from exc
    except Exception:
        db.rollback()
        raise


def commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Commit failed, rolled back')
        raise StorageFailure() from exc
