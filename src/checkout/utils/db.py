"""Database engine, schema management and the unit of work.

Every state-changing checkout operation runs inside ``unit_of_work()``: one
session, one transaction, committed only when the whole block succeeds.

SQLite only has database-level locks. A deferred transaction that reads and
then tries to write can be refused with "database is locked" when another
writer is committing, so SQLite transactions are opened with
``BEGIN IMMEDIATE``: writers queue up on the busy timeout instead. On
server databases the conditional UPDATE statements issued by the inventory
ledger and coupon counter give row-level atomicity on their own.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from checkout.domain import Base

_engine: Engine | None = None
_session_factory: sessionmaker | None = None


def _enable_immediate_transactions(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # noqa: ARG001
        # Let SQLAlchemy emit BEGIN instead of the sqlite3 driver
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(database_uri: str) -> Engine:
    """Build an engine for the given URI, tuned for concurrent checkouts."""
    if database_uri.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False, "timeout": 30}}
        if database_uri in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool
        engine = create_engine(database_uri, **options)
        _enable_immediate_transactions(engine)
        return engine

    return create_engine(database_uri, pool_pre_ping=True)


def init_db(database_uri: str | None = None) -> Engine:
    """Create the process-wide engine and session factory."""
    global _engine, _session_factory

    if database_uri is None:
        from checkout.config import get_settings

        database_uri = get_settings().database_uri

    if _engine is not None:
        _engine.dispose()

    _engine = create_db_engine(database_uri)
    _session_factory = sessionmaker(bind=_engine, expire_on_commit=False)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        init_db()
    return _engine


def get_session_factory() -> sessionmaker:
    if _session_factory is None:
        init_db()
    return _session_factory


def setup_db(engine: Engine | None = None) -> None:
    """Create all checkout tables."""
    # Import models so they register with the declarative base
    import checkout.catalogue.product  # noqa: F401
    import checkout.coupon.coupon  # noqa: F401
    import checkout.order.order  # noqa: F401

    Base.metadata.create_all(engine or get_engine())


def drop_db(engine: Engine | None = None) -> None:
    """Drop all checkout tables."""
    Base.metadata.drop_all(engine or get_engine())


def dispose_db() -> None:
    """Release pooled connections and forget the engine."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


@contextmanager
def unit_of_work() -> Iterator[Session]:
    """Open a session whose transaction commits on success and rolls back on error."""
    session = get_session_factory()()
    try:
        with session.begin():
            yield session
    finally:
        session.close()
