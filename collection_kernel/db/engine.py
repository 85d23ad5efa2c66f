"""
Module: collection_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  A ``Database`` object is the single
    point of connection configuration and is passed explicitly to whoever
    needs it; there is no module-level engine.
Architecture position: Kernel > DB.  May import from db/base.py.
    MUST NOT import from services/, selectors/, domain/, or outer layers
    (except create_tables which imports models so metadata is complete).

Invariants enforced:
    - SQLite connections run with ``PRAGMA foreign_keys=ON`` so cascades and
      FK checks behave as declared.
    - In-memory SQLite uses a StaticPool: every session sees the same
      database for the lifetime of the ``Database`` object.
    - session_scope() is commit-or-rollback: a compound ledger operation is
      either fully applied or not applied at all.

Failure modes:
    - StorageFailureError (chained to the SQLAlchemyError) if the database
      rejects a statement or the commit fails.
"""

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from collection_kernel.exceptions import StorageFailureError
from collection_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_MEMORY_URLS = frozenset({
    "sqlite://",
    "sqlite:///:memory:",
    "sqlite+pysqlite://",
    "sqlite+pysqlite:///:memory:",
})


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Owns one SQLAlchemy engine and its session factory.

    Contract:
        Constructed once per process (or once per test) and injected into
        the ledger facade, backup service and scripts.  Services never open
        their own sessions; they receive one from ``session_scope()``.

    Guarantees:
        - ``session_scope()`` commits on normal exit and rolls back on any
          exception, then closes the session.
        - ``dispose()`` releases every pooled connection.
    """

    def __init__(self, database_url: str, echo: bool = False):
        """
        Initialize the engine from a SQLAlchemy database URL.

        Args:
            database_url: e.g. ``sqlite:///collection_tracker.db`` or
                ``sqlite://`` for an in-memory store.
            echo: If True, log all SQL statements.
        """
        self.url = database_url
        engine_kwargs: dict = {"echo": echo}
        if database_url in _MEMORY_URLS:
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}

        self.engine: Engine = create_engine(database_url, **engine_kwargs)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=self.engine, expire_on_commit=False
        )

        logger.info(
            "engine_initialized",
            extra={
                "dialect": self.engine.dialect.name,
                "echo": echo,
                "in_memory": database_url in _MEMORY_URLS,
            },
        )

    def get_session(self) -> Session:
        """Get a new, unmanaged session instance."""
        return self._session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope around a series of operations.

        Postconditions: On normal exit, session is committed and closed.
            On exception, session is rolled back and closed.  Domain errors
            are re-raised unchanged; raw SQLAlchemy errors are re-raised as
            StorageFailureError.

        Usage:
            with database.session_scope() as session:
                LedgerService(session, clock).record_collection(...)
        """
        session = self.get_session()
        logger.debug("transaction_started")
        try:
            yield session
            session.commit()
            logger.debug("transaction_committed")
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning("transaction_rolled_back", exc_info=True)
            raise StorageFailureError("session_scope", str(exc)) from exc
        except Exception:
            session.rollback()
            logger.warning("transaction_rolled_back", exc_info=True)
            raise
        finally:
            session.close()

    def create_tables(self) -> None:
        """
        Create all tables defined in the models.

        Idempotent: existing tables are left alone.
        """
        from collection_kernel.db.base import Base
        import collection_kernel.models  # noqa: F401  (populate metadata)

        Base.metadata.create_all(self.engine)
        logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})

    def drop_tables(self) -> None:
        """Drop all tables. Use with caution - primarily for testing."""
        from collection_kernel.db.base import Base
        import collection_kernel.models  # noqa: F401

        Base.metadata.drop_all(self.engine)

    def dispose(self) -> None:
        """Dispose the engine, releasing all pooled connections."""
        self.engine.dispose()
