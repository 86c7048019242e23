"""
Process-wide engine and session factory for the settlement store.

Two backends are supported:

* PostgreSQL (production): a bounded QueuePool, READ COMMITTED, and a
  server-side ``statement_timeout`` on every connection.  Checking out a
  connection waits at most ``pool_timeout`` seconds, after which SQLAlchemy
  raises ``TimeoutError`` (mapped to UpstreamUnavailableError by services).
* SQLite (tests, local tooling): a single shared connection.  pysqlite's
  implicit transaction handling is switched off and BEGIN is emitted
  explicitly so that ``session.begin_nested()`` SAVEPOINTs work.

Services never commit.  ``session_scope()`` is the unit of work for scripts
and request handlers: commit on success, rollback on any exception.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from settlement_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def _sqlite_engine(url: str, echo: bool) -> Engine:
    engine = create_engine(
        url,
        echo=echo,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _autocommit_driver(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _explicit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def _postgres_engine(
    url: str,
    echo: bool,
    *,
    pool_size: int,
    max_overflow: int,
    pool_timeout: int,
    pool_recycle: int,
    statement_timeout_ms: int,
) -> Engine:
    return create_engine(
        url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=True,
        isolation_level="READ COMMITTED",
        connect_args={"options": f"-c statement_timeout={statement_timeout_ms}"},
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_timeout: int = 10,
    pool_recycle: int = 1800,
    statement_timeout_ms: int = 15000,
) -> Engine:
    """Create the engine for ``database_url``, replacing any previous one.

    Pool and timeout arguments apply to PostgreSQL only.
    """
    global _engine, _session_factory

    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        engine = _sqlite_engine(database_url, echo)
        bounds = {}
    else:
        bounds = {
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_timeout": pool_timeout,
            "pool_recycle": pool_recycle,
            "statement_timeout_ms": statement_timeout_ms,
        }
        engine = _postgres_engine(database_url, echo, **bounds)

    if _engine is not None:
        _engine.dispose()
    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"backend": backend, "echo": echo, **bounds})
    return engine


def _require_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("database engine not initialised; call init_engine_from_url() first")
    return _engine


def get_engine() -> Engine:
    return _require_engine()


def get_session() -> Session:
    _require_engine()
    return _session_factory()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Unit of work: commit on success, rollback and re-raise on error.

        with session_scope() as session:
            CarryForwardService(session).close_period(tenant_id, settlement_id)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("unit_of_work_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    from settlement_kernel.db.base import Base
    import settlement_kernel.models  # noqa: F401  (registers every table)

    return Base.metadata


def create_tables() -> None:
    _metadata().create_all(_require_engine())


def drop_tables() -> None:
    """Drop every settlement table.  Test and tooling use only."""
    _metadata().drop_all(_require_engine())


def reset_engine() -> None:
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
