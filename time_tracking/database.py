from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from time_tracking.core.config import get_database_url

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)

Base = declarative_base()

DATABASE_URL = ""
engine: Optional[Engine] = None
_configured_database_url = None


def _install_sqlite_write_serialization(sqlite_engine: Engine) -> None:
    """Open every SQLite transaction with BEGIN IMMEDIATE.

    SQLite has no row locks; taking the write lock up front is what keeps
    check-then-write sequences atomic across connections.
    """

    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def _create_engine(database_url: str) -> Engine:
    url = make_url(database_url)
    if url.drivername.startswith("sqlite"):
        new_engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        _install_sqlite_write_serialization(new_engine)
        return new_engine

    return create_engine(database_url, pool_pre_ping=True)


def configure_database() -> None:
    global DATABASE_URL, engine, _configured_database_url

    database_url = get_database_url()

    if engine is not None and _configured_database_url == database_url:
        return

    engine = _create_engine(database_url)
    SessionLocal.configure(bind=engine)
    DATABASE_URL = database_url
    _configured_database_url = database_url


configure_database()


def is_postgresql(db: Session) -> bool:
    return db.get_bind().dialect.name == "postgresql"


def get_db():
    configure_database()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Optional[Session] = None) -> Iterator[Session]:
    """
    One atomic transaction around a check-then-write operation.

    If db is provided, the caller owns the transaction: nothing is committed
    or closed here. Otherwise a fresh session is opened, committed on success
    and rolled back on any exception, business errors included.
    """
    owns_db = db is None
    if owns_db:
        configure_database()
        db = SessionLocal()

    try:
        yield db
        if owns_db:
            db.commit()
    except Exception:
        if owns_db:
            db.rollback()
        raise
    finally:
        if owns_db:
            db.close()
