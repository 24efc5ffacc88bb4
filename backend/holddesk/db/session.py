from __future__ import annotations

import logging
from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from holddesk.db.config import get_database_url

logger = logging.getLogger(__name__)

DATABASE_URL = get_database_url()


def build_engine(database_url: str):
    # The hold sweeper thread opens its own sessions on this engine.
    connect_args = {}
    if make_url(database_url).get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
    return create_engine(
        database_url,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_db_transactional() -> Generator[Session, None, None]:
    """Request-scoped unit of work: services flush, this commits or rolls back."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        logger.debug("rolling back request transaction", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()
