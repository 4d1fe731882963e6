"""Database engine and session management."""

from collections.abc import Generator
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from flcore.config import settings
from flcore.core.database.base import Base


def create_engine_from_settings(url: str | None = None, echo: bool | None = None) -> Engine:
    """Create an engine for the configured database.

    In-memory SQLite databases share one connection so that every
    session sees the same tables. SQLite engines get SAVEPOINT support
    through ``enable_sqlite_savepoints``.

    Args:
        url: Database URL; defaults to ``settings.database_url``
        echo: Echo SQL; defaults to ``settings.database_echo``

    Returns:
        A SQLAlchemy engine
    """
    url = url or settings.database_url
    kwargs: dict = {"echo": settings.database_echo if echo is None else echo}
    if url.startswith("sqlite") and (url in ("sqlite://", "sqlite:///:memory:")):
        kwargs["connect_args"] = {"check_same_thread": False}
        kwargs["poolclass"] = StaticPool
    rv = create_engine(url, **kwargs)
    if url.startswith("sqlite"):
        enable_sqlite_savepoints(rv)
    return rv


def enable_sqlite_savepoints(bind: Engine) -> Engine:
    """Let pysqlite run SAVEPOINTs.

    The driver opens transactions lazily on its own, which breaks
    ``Session.begin_nested``. Its transaction handling is switched off and
    SQLAlchemy emits BEGIN itself.
    """

    @event.listens_for(bind, "connect")
    def _connect(dbapi_connection: Any, _connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(bind, "begin")
    def _begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")

    return bind


engine = create_engine_from_settings()

session_factory = sessionmaker(
    engine,
    class_=Session,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


def init_db(bind: Engine | None = None) -> None:
    """Create all tables registered on ``Base.metadata``."""
    Base.metadata.create_all(bind or engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a database session.

    Commits on success and rolls back on error.

    Yields:
        Session: Database session
    """
    with session_factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
