"""PostgreSQL executor for the import target database."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence, Tuple

try:
    import psycopg2
    from psycopg2.extras import RealDictCursor
except ImportError as e:
    raise ImportError(
        "psycopg2 is not installed. Install with: pip install psycopg2-binary"
    ) from e

logger = logging.getLogger(__name__)


class PostgresExecutor:
    """PostgreSQL connection wrapper used by the import engine.

    Every public method runs in its own short transaction: commit on success,
    rollback and re-raise on failure. Driver exceptions propagate unchanged so
    callers can classify them by ``pgcode``.

    Usage:
        with PostgresExecutor(host="localhost", database="app") as db:
            db.run_transaction([("CREATE OR REPLACE VIEW v AS SELECT 1", ())])
            rows = db.execute("SELECT * FROM v")

    Environment variables (used as defaults):
        - QB_POSTGRES_HOST
        - QB_POSTGRES_PORT
        - QB_POSTGRES_DATABASE
        - QB_POSTGRES_USER
        - QB_POSTGRES_PASSWORD

    Args:
        host: PostgreSQL server hostname.
        port: PostgreSQL server port.
        database: Database name.
        user: Username for authentication.
        password: Password for authentication.
        schema: Target schema, first on the search path (default: public).
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        database: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        schema: str = "public",
    ):
        self.host = host or os.getenv("QB_POSTGRES_HOST", "localhost")
        self.port = port or int(os.getenv("QB_POSTGRES_PORT", "5432"))
        self.database = database or os.getenv("QB_POSTGRES_DATABASE", "postgres")
        self.user = user or os.getenv("QB_POSTGRES_USER", "postgres")
        self.password = password or os.getenv("QB_POSTGRES_PASSWORD", "postgres")
        self.schema = schema
        self._conn: Optional[psycopg2.extensions.connection] = None

    def connect(self) -> None:
        """Open connection to PostgreSQL."""
        if self._conn is not None and not self._conn.closed:
            return  # Already connected

        self._conn = psycopg2.connect(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
        )
        with self._conn.cursor() as cur:
            cur.execute(f"SET search_path TO {self.schema}, public")
        self._conn.commit()

    def close(self) -> None:
        """Close connection to PostgreSQL."""
        if self._conn is not None:
            try:
                self._conn.close()
            except psycopg2.Error as e:
                logger.debug("Error closing connection: %s", e)
            self._conn = None

    def __enter__(self) -> "PostgresExecutor":
        """Context manager entry - opens connection."""
        self.connect()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit - closes connection."""
        self.close()

    def _ensure_connected(self) -> psycopg2.extensions.connection:
        if self._conn is None or self._conn.closed:
            self.connect()
        assert self._conn is not None
        return self._conn

    @contextmanager
    def _transaction(self, cursor_factory=None) -> Iterator[Any]:
        """Cursor inside one transaction: commit on exit, rollback and re-raise on error."""
        conn = self._ensure_connected()
        try:
            with conn.cursor(cursor_factory=cursor_factory) as cur:
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    @staticmethod
    def _run(cur, sql: str, params: tuple) -> None:
        if params:
            cur.execute(sql, params)
        else:
            cur.execute(sql)

    @staticmethod
    def _rows(cur) -> list[dict[str, Any]]:
        return [dict(row) for row in cur.fetchall()] if cur.description else []

    def execute(self, sql: str, params: tuple[Any, ...] = (), timeout_ms: int = 0) -> list[dict[str, Any]]:
        """Run one statement and return its rows as dicts.

        ``timeout_ms`` sets a transaction-local statement timeout (0 = none).
        """
        with self._transaction(RealDictCursor) as cur:
            if timeout_ms > 0:
                cur.execute(f"SET LOCAL statement_timeout = {int(timeout_ms)}")
            self._run(cur, sql, params)
            return self._rows(cur)

    def run_transaction(self, steps: Sequence[Tuple[str, tuple]]) -> None:
        """Run ``(sql, params)`` steps atomically: all commit or none do."""
        with self._transaction() as cur:
            for sql, params in steps:
                self._run(cur, sql, params)

    def execute_as_session(
        self,
        sql: str,
        session_id: str,
        setting: str = "app.session_id",
        params: tuple[Any, ...] = (),
    ) -> list[dict[str, Any]]:
        """Run a query with the session setting set for this transaction only.

        Resolved widget references read the setting through
        ``current_setting(..., true)``; ``set_config(..., true)`` scopes it to
        the transaction, so pooled connections never leak a session.
        """
        with self._transaction(RealDictCursor) as cur:
            cur.execute("SELECT set_config(%s, %s, true)", (setting, session_id))
            self._run(cur, sql, params)
            return self._rows(cur)
