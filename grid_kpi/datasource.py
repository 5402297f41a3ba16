"""Relational data source adapter built on a SQLAlchemy connection pool."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import NoSuchTableError, SQLAlchemyError
from sqlalchemy.sql.expression import Executable

from .config import Settings
from .errors import DataSourceError

logger = logging.getLogger(__name__)


def _describe(exc: SQLAlchemyError) -> str:
    """Summarise a driver error without echoing connection details."""

    original = getattr(exc, "orig", None) or exc
    summary = type(original).__name__
    code = getattr(original, "pgcode", None) or getattr(original, "sqlstate", None)
    if code:
        summary = f"{summary} (SQLSTATE {code})"
    return summary


@dataclass(slots=True)
class DataSource:
    """Owns one connection pool; executes bound statements and returns row mappings."""

    url: str
    name: str = "primary"
    schema: Optional[str] = None
    pool_size: int = 5
    pool_timeout: int = 30
    connect_timeout: int = 10
    query_timeout_ms: Optional[int] = None
    sslmode: Optional[str] = None
    _engine: Optional[Engine] = field(default=None, init=False, repr=False)

    @classmethod
    def from_settings(cls, settings: Settings, url: str, name: str) -> "DataSource":
        return cls(
            url=url,
            name=name,
            schema=settings.db_schema,
            pool_size=settings.db_pool_size,
            pool_timeout=settings.db_pool_timeout,
            connect_timeout=settings.db_connect_timeout,
            query_timeout_ms=settings.query_timeout_ms,
            sslmode=settings.db_sslmode,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self) -> None:
        if self._engine is not None:
            return

        url = make_url(self.url)
        kwargs: Dict[str, Any] = {"pool_pre_ping": True}
        connect_args: Dict[str, Any] = {}

        if url.get_backend_name() == "sqlite":
            connect_args["check_same_thread"] = False
        else:
            kwargs.update(pool_size=self.pool_size, max_overflow=10, pool_timeout=self.pool_timeout)
            if url.get_backend_name() == "postgresql":
                connect_args["connect_timeout"] = self.connect_timeout
                if self.query_timeout_ms:
                    connect_args["options"] = f"-c statement_timeout={int(self.query_timeout_ms)}"
                if self.sslmode:
                    connect_args["sslmode"] = self.sslmode

        self._engine = create_engine(url, connect_args=connect_args, **kwargs)
        logger.info(
            "Opened %s data source %s", self.name, url.render_as_string(hide_password=True)
        )

    def close(self) -> None:
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        logger.info("Closed %s data source", self.name)

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise DataSourceError(f"Data source '{self.name}' is not open.")
        return self._engine

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def fetch_all(
        self,
        statement: Executable | str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        error_message: str = "Database query failed",
    ) -> List[Dict[str, Any]]:
        """Execute a statement with bound parameters and return every row as a dict."""

        if isinstance(statement, str):
            statement = text(statement)

        try:
            with self.engine.connect() as conn:
                result = conn.execute(statement, dict(params or {}))
                rows = [dict(row) for row in result.mappings()]
        except SQLAlchemyError as exc:
            logger.error("%s on %s data source: %s", error_message, self.name, _describe(exc))
            raise DataSourceError(error_message, details=_describe(exc)) from exc

        logger.debug("%s data source returned %d rows", self.name, len(rows))
        return rows

    def column_names(self, table_name: str) -> Optional[Set[str]]:
        """Return the column names of a table, or None when the table does not exist."""

        try:
            columns = inspect(self.engine).get_columns(table_name, schema=self.schema)
        except NoSuchTableError:
            return None
        except SQLAlchemyError as exc:
            logger.error("Schema inspection of %s failed: %s", table_name, _describe(exc))
            raise DataSourceError("Failed to inspect database schema", details=_describe(exc)) from exc
        if not columns:
            return None
        return {column["name"] for column in columns}

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("Health check on %s data source failed: %s", self.name, _describe(exc))
            return False
        return True
