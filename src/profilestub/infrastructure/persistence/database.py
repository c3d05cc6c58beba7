"""Database engine management using SQLAlchemy 2.0.

Record tables are created dynamically from the normalized schema, so there
are no ORM models; the manager only owns the engine. The default URL is an
in-memory SQLite database, which needs a single shared connection
(StaticPool) to stay alive across operations.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Connection, Engine, create_engine, event
from sqlalchemy.pool import StaticPool

from profilestub.core.config import Settings, get_settings
from profilestub.core.logging import get_logger

logger = get_logger(__name__)


def _is_memory_sqlite(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


class DatabaseManager:
    """Database engine manager.

    The engine is created lazily on first use and disposed by ``close()``.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self._engine: Engine | None = None

    @property
    def engine(self) -> Engine:
        """Get or create the database engine.

        Returns:
            Engine: SQLAlchemy engine instance.
        """
        if self._engine is None:
            url = self.settings.database_url
            kwargs: dict = {"echo": self.settings.db_echo}
            if url.startswith("sqlite"):
                kwargs["connect_args"] = {"check_same_thread": False}
                if _is_memory_sqlite(url):
                    kwargs["poolclass"] = StaticPool
            self._engine = create_engine(url, **kwargs)

            if url.startswith("sqlite"):
                event.listen(self._engine, "connect", _set_sqlite_pragma)

            logger.info(
                "Database engine created",
                database_url=self._engine.url.render_as_string(hide_password=True),
            )
        return self._engine

    @contextmanager
    def begin(self) -> Iterator[Connection]:
        """Open a connection with a transaction that commits on success.

        Yields:
            Connection: Connection inside a transaction.
        """
        with self.engine.begin() as conn:
            yield conn

    def close(self) -> None:
        """Dispose of the engine and its connections."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            logger.info("Database engine disposed")


def _set_sqlite_pragma(dbapi_connection, connection_record) -> None:
    """Make LIKE case sensitive, as it is on the emulated API."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA case_sensitive_like=ON")
    cursor.close()
