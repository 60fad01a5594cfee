"""
Destination Session Module

This module wraps the PostgreSQL connection used for a whole run behind a
narrow interface:

- query(sql, parameters): read-only statement, returns result rows
- execute(sql): statement without a result set
- transaction(): groups statements into one commit or rollback
- copy_in(schema, table, stream): bulk load a text COPY stream
- copy_out(schema, table, sink): bulk export a table as a text COPY stream

The connection comes from the Airflow PostgresHook, so the same connection
IDs work from the DAG and the command line (AIRFLOW_CONN_* variables).
"""

from typing import Any, List, Optional, Tuple
from airflow.providers.postgres.hooks.postgres import PostgresHook
from psycopg2 import sql
import contextlib
import logging

logger = logging.getLogger(__name__)


class PostgresSession:
    """
    Single PostgreSQL connection owned by one run.

    Statements issued outside ``transaction()`` are committed one by one;
    inside it they share a transaction that is committed on exit or rolled
    back on error.
    """

    def __init__(self, postgres_conn_id: str, conn=None):
        """
        Initialize the session.

        Args:
            postgres_conn_id: Airflow connection ID for PostgreSQL
            conn: Optional already-open psycopg2 connection
        """
        self.conn_id = postgres_conn_id
        self._conn = conn
        self._in_transaction = False

    def get_conn(self):
        """Return the session's connection, opening it on first use."""
        if self._conn is None:
            hook = PostgresHook(postgres_conn_id=self.conn_id)
            self._conn = hook.get_conn()
            self._conn.autocommit = False
            logger.info(f"Connected to PostgreSQL via connection '{self.conn_id}'")
        return self._conn

    def _finish_statement(self, conn) -> None:
        if not self._in_transaction:
            conn.commit()

    def _fail_statement(self, conn) -> None:
        if not self._in_transaction:
            conn.rollback()

    def query(
        self,
        statement: str,
        parameters: Optional[List[Any]] = None
    ) -> List[Tuple[Any, ...]]:
        """
        Execute a read-only query and return all rows as tuples.

        Args:
            statement: SQL query to execute
            parameters: Optional list of parameters for the query

        Returns:
            List of tuples, one per row
        """
        conn = self.get_conn()
        try:
            with conn.cursor() as cursor:
                cursor.execute(statement, parameters)
                rows = cursor.fetchall() if cursor.description else []
            self._finish_statement(conn)
            return [tuple(row) for row in rows]
        except Exception as e:
            logger.error(f"Error executing query: {e}")
            logger.error(f"Query: {statement}")
            if parameters:
                logger.error(f"Parameters: {parameters}")
            self._fail_statement(conn)
            raise

    def execute(self, statement: str) -> None:
        """Execute a SQL statement (typically DDL or DML)."""
        conn = self.get_conn()
        logger.debug(f"Executing: {statement}")
        try:
            with conn.cursor() as cursor:
                cursor.execute(statement)
            self._finish_statement(conn)
        except Exception as e:
            logger.error(f"Error executing statement: {e}")
            logger.error(f"SQL: {statement}")
            self._fail_statement(conn)
            raise

    @contextlib.contextmanager
    def transaction(self):
        """Run the enclosed statements as one transaction."""
        conn = self.get_conn()
        if self._in_transaction:
            raise RuntimeError("Nested transactions are not supported")
        self._in_transaction = True
        try:
            yield self
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._in_transaction = False

    def copy_in(self, schema_name: str, table_name: str, stream) -> int:
        """
        Stream text COPY rows into a table.

        Args:
            schema_name: Target schema name
            table_name: Target table name
            stream: Readable text stream in COPY text format

        Returns:
            Number of rows loaded as reported by the server
        """
        copy_sql = sql.SQL('COPY {}.{} FROM STDIN').format(
            sql.Identifier(schema_name),
            sql.Identifier(table_name),
        )
        conn = self.get_conn()
        try:
            with conn.cursor() as cursor:
                cursor.copy_expert(copy_sql, stream)
                rowcount = cursor.rowcount
            self._finish_statement(conn)
        except Exception:
            self._fail_statement(conn)
            raise
        return max(rowcount, 0)

    def copy_out(self, schema_name: str, table_name: str, sink) -> None:
        """
        Stream ``SELECT *`` of a table out in text COPY format.

        Args:
            schema_name: Source schema name
            table_name: Source table name
            sink: Writable text stream receiving COPY output
        """
        copy_sql = sql.SQL('COPY (SELECT * FROM {}.{}) TO STDOUT').format(
            sql.Identifier(schema_name),
            sql.Identifier(table_name),
        )
        conn = self.get_conn()
        try:
            with conn.cursor() as cursor:
                cursor.copy_expert(copy_sql, sink)
            self._finish_statement(conn)
        except Exception:
            self._fail_statement(conn)
            raise

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


class DryRunSession:
    """
    Session that logs every mutating statement and COPY instead of running it.

    Read-only catalog queries are passed to the wrapped session so the
    preview is built from the real schema.
    """

    def __init__(self, inner: PostgresSession):
        self._inner = inner
        self.statements: List[str] = []

    def _preview(self, statement: str) -> None:
        self.statements.append(statement)
        logger.info(f"[dry-run] {statement}")

    def query(
        self,
        statement: str,
        parameters: Optional[List[Any]] = None
    ) -> List[Tuple[Any, ...]]:
        return self._inner.query(statement, parameters)

    def execute(self, statement: str) -> None:
        self._preview(statement)

    @contextlib.contextmanager
    def transaction(self):
        self._preview("BEGIN")
        yield self
        self._preview("COMMIT")

    def copy_in(self, schema_name: str, table_name: str, stream) -> int:
        self._preview(f'COPY "{schema_name}"."{table_name}" FROM STDIN')
        return 0

    def copy_out(self, schema_name: str, table_name: str, sink) -> None:
        self._preview(f'COPY (SELECT * FROM "{schema_name}"."{table_name}") TO STDOUT')

    def close(self) -> None:
        self._inner.close()


def open_session(postgres_conn_id: str, dry_run: bool = False):
    """
    Create the run's session.

    Args:
        postgres_conn_id: Airflow connection ID for PostgreSQL
        dry_run: Whether mutating statements are only logged

    Returns:
        PostgresSession, or DryRunSession wrapping one
    """
    if not postgres_conn_id:
        raise ValueError("A PostgreSQL connection ID is required")
    session = PostgresSession(postgres_conn_id)
    if dry_run:
        return DryRunSession(session)
    return session
