"""
triptrack/DB/session.py
======================================
Database Session Configuration Module
======================================

Builds the SQLAlchemy engine and session factory used by the SQL trip store.

Usage Example:
-------------
    from triptrack.DB.session import make_engine, make_session_factory, init_db

    engine = make_engine(settings.DATABASE_URL)
    init_db(engine)
    SessionLocal = make_session_factory(engine)

    with SessionLocal() as db:
        trips = get_trips_by_device(db, "bike1")

Session Configuration:
---------------------
- autocommit=False: repositories commit explicitly
- autoflush=False: nothing is flushed behind the caller's back
- expire_on_commit=False: rows stay readable after the session closes

SQLite:
------
The persistence worker runs repository calls in worker threads, so SQLite
connections are opened with check_same_thread=False. In-memory SQLite uses
a StaticPool so every session sees the same database.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from triptrack.DB.base_class import Base


def make_engine(database_url: str) -> Engine:
    """
    Create an engine for database_url, with SQLite threading adjustments.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    return create_engine(database_url, pool_pre_ping=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def init_db(engine: Engine):
    """
    Create the trips and points tables if they do not exist yet.
    """
    # Registers the models on Base.metadata
    from triptrack.Models import trip  # noqa: F401

    Base.metadata.create_all(bind=engine)
