"""
Database Connection Handles

Thin wrappers around Airflow hooks that give every migration stage the same small
interface: ``open()``, ``close()``, ``session()`` and ``execute(query, params)``.
Stages receive these handles explicitly instead of reaching into shared state.
"""

from typing import Any, List, Optional, Sequence, Tuple
from airflow.providers.microsoft.mssql.hooks.mssql import MsSqlHook
from airflow.providers.postgres.hooks.postgres import PostgresHook
from psycopg2.extras import register_uuid
import contextlib
import logging
import re

logger = logging.getLogger(__name__)

# Quoted identifiers and string literals are matched first so a $N inside them is kept
_POSITIONAL_PLACEHOLDER = re.compile(r'"(?:[^"]|"")*"|\'(?:[^\']|\'\')*\'|\$(\d+)')


class _HookConnection:
    """Shared open/close/execute plumbing over a DB-API connection."""

    kind = 'database'

    def __init__(self, conn_id: str):
        self.conn_id = conn_id
        self._conn = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _connect(self):
        raise NotImplementedError

    def open(self) -> None:
        """Open the underlying connection if it is not already open."""
        if self._conn is not None:
            return
        logger.info(f"Opening {self.kind} connection '{self.conn_id}'")
        self._conn = self._connect()

    def close(self) -> None:
        """Close the underlying connection."""
        if self._conn is None:
            return
        try:
            self._conn.close()
        except Exception:
            logger.exception(f"Exception occurred while closing {self.kind} connection '{self.conn_id}'")
        finally:
            self._conn = None
        logger.info(f"Closed {self.kind} connection '{self.conn_id}'")

    @contextlib.contextmanager
    def session(self):
        """Open the connection for the duration of a ``with`` block."""
        self.open()
        try:
            yield self
        finally:
            self.close()

    def _run(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Tuple[Any, ...]]:
        if self._conn is None:
            raise RuntimeError(f"{self.kind.capitalize()} connection '{self.conn_id}' is not open")

        cursor = self._conn.cursor()
        try:
            if params is None:
                cursor.execute(query)
            else:
                cursor.execute(query, params)
            # Statements without a result set (DDL, INSERT) have no description
            if cursor.description is None:
                return []
            return [tuple(row) for row in cursor.fetchall()]
        finally:
            cursor.close()


class MsSqlSource(_HookConnection):
    """Source handle backed by the Airflow SQL Server hook (pymssql)."""

    kind = 'SQL Server source'

    def __init__(self, mssql_conn_id: str):
        """
        Initialize the source handle.

        Args:
            mssql_conn_id: Airflow connection ID for SQL Server
        """
        super().__init__(mssql_conn_id)
        self.mssql_hook = MsSqlHook(mssql_conn_id=mssql_conn_id)

    def _connect(self):
        return self.mssql_hook.get_conn()

    def execute(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Tuple[Any, ...]]:
        """
        Run a query against SQL Server.

        Args:
            query: SQL text using pymssql ``%s`` placeholders
            params: Optional positional parameters

        Returns:
            Fetched rows as tuples (empty if the statement returned no result set)
        """
        return self._run(query, tuple(params) if params is not None else None)


class PostgresTarget(_HookConnection):
    """Target handle backed by the Airflow PostgreSQL hook (psycopg2)."""

    kind = 'PostgreSQL target'

    def __init__(self, postgres_conn_id: str):
        """
        Initialize the target handle.

        Args:
            postgres_conn_id: Airflow connection ID for PostgreSQL
        """
        super().__init__(postgres_conn_id)
        self.postgres_hook = PostgresHook(postgres_conn_id=postgres_conn_id)

    def _connect(self):
        conn = self.postgres_hook.get_conn()
        # Every statement is its own unit of work
        conn.autocommit = True
        register_uuid(conn_or_curs=conn)
        return conn

    def execute(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Tuple[Any, ...]]:
        """
        Run a statement against PostgreSQL.

        Args:
            query: SQL text, optionally with ``$1``-style positional placeholders
            params: Flat list of values, where ``$N`` binds ``params[N - 1]``

        Returns:
            Fetched rows as tuples (empty if the statement returned no result set)
        """
        if params is None:
            return self._run(query)

        converted, named_params = to_pyformat(query, params)
        return self._run(converted, named_params)


def to_pyformat(query: str, params: Sequence[Any]) -> Tuple[str, dict]:
    """
    Convert ``$N`` positional placeholders to psycopg2 named placeholders.

    Literal ``%`` characters are escaped so psycopg2 does not treat them as
    placeholders. Text inside double-quoted identifiers and single-quoted
    literals is left untouched.

    Args:
        query: SQL text with ``$N`` placeholders
        params: Flat parameter list

    Returns:
        Tuple of (psycopg2 query, parameter dict keyed ``p1``..``pN``)

    Raises:
        ValueError: If a placeholder refers past the end of ``params``
    """
    escaped = query.replace('%', '%%')

    def _replace(match: 're.Match') -> str:
        if match.group(1) is None:
            return match.group(0)
        index = int(match.group(1))
        if index < 1 or index > len(params):
            raise ValueError(f"Placeholder ${index} has no matching parameter ({len(params)} given)")
        return f"%(p{index})s"

    converted = _POSITIONAL_PLACEHOLDER.sub(_replace, escaped)
    named_params = {f"p{index}": value for index, value in enumerate(params, start=1)}
    return converted, named_params
