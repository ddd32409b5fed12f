"""
db/session.py — Database Connection & Session Management
=========================================================
SQLAlchemy engine + session factory for the SQL state store.
The lifecycle only suspends on anchor calls, so the store uses a plain
synchronous engine; every read/write is a short transaction.

Usage:
    engine = create_db_engine("sqlite:///./racepass.db")
    init_db(engine)
    SessionLocal = make_session_factory(engine)
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger("racepass.db")


class Base(DeclarativeBase):
    """Base class all database models inherit from."""
    pass


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # one shared connection, otherwise every session sees an empty database
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine):
    """Create all tables on startup if they don't exist."""
    from db.models import LedgerRecord, SubjectRecord  # noqa: F401, registers tables
    Base.metadata.create_all(engine)
    logger.info("Database tables created / verified.")
