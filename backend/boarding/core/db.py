# Database wiring: one engine per process, a session factory, the
# declarative Base every model inherits from, and the FastAPI dependency
# that hands a session to each request.

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from boarding.core.config import settings


_TX_DEPTH_KEY = "boarding_tx_depth"


def _engine_kwargs(url: str) -> dict:
    kwargs: dict = {"echo": settings.DB_ECHO, "future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    return kwargs


engine = create_engine(settings.DATABASE_URL, **_engine_kwargs(settings.DATABASE_URL))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

Base = declarative_base()


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Run a block as one unit of work.

    The outermost block commits on success and rolls back on any exception.
    Inner blocks join the outer one, so a service can wrap several
    repository calls and get all-or-nothing semantics for the lot.
    """
    depth = db.info.get(_TX_DEPTH_KEY, 0)
    db.info[_TX_DEPTH_KEY] = depth + 1
    try:
        yield db
        if depth == 0:
            db.commit()
    except BaseException:
        if depth == 0:
            db.rollback()
        raise
    finally:
        db.info[_TX_DEPTH_KEY] = depth


def in_outer_transaction(db: Session) -> bool:
    return db.info.get(_TX_DEPTH_KEY, 0) > 0
