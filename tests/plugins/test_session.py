"""
Tests for Destination Session Module

These tests validate connection handling, commit/rollback behavior and
the dry-run wrapper.
"""

import io

import pytest
from unittest.mock import MagicMock, Mock, patch
from mysql_pg_load.session import DryRunSession, PostgresSession, open_session


@pytest.fixture
def mock_conn():
    """Create mock psycopg2 connection with a context-managed cursor."""
    conn = MagicMock()
    cursor = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    return conn


def cursor_of(conn):
    return conn.cursor.return_value.__enter__.return_value


class TestPostgresSession:
    """Test PostgresSession class."""

    def test_connection_from_hook(self):
        """Test that the connection comes from PostgresHook with autocommit off."""
        with patch('mysql_pg_load.session.PostgresHook') as MockPg:
            conn = MagicMock()
            MockPg.return_value.get_conn.return_value = conn

            session = PostgresSession('postgres_target')
            assert session.get_conn() is conn
            assert session.get_conn() is conn

        MockPg.assert_called_once_with(postgres_conn_id='postgres_target')
        assert conn.autocommit is False

    def test_query_returns_tuples_and_commits(self, mock_conn):
        """Test that query rows are returned as tuples outside a transaction."""
        cursor_of(mock_conn).fetchall.return_value = [['users', 'users_pkey']]

        rows = PostgresSession('pg', conn=mock_conn).query('SELECT 1', ['public'])

        assert rows == [('users', 'users_pkey')]
        cursor_of(mock_conn).execute.assert_called_once_with('SELECT 1', ['public'])
        mock_conn.commit.assert_called_once()

    def test_execute_failure_rolls_back(self, mock_conn):
        """Test that a failing statement is rolled back and re-raised."""
        cursor_of(mock_conn).execute.side_effect = Exception("syntax error")

        with pytest.raises(Exception, match="syntax error"):
            PostgresSession('pg', conn=mock_conn).execute('BROKEN')

        mock_conn.rollback.assert_called_once()
        mock_conn.commit.assert_not_called()

    def test_transaction_commits_once(self, mock_conn):
        """Test that statements inside a transaction share one commit."""
        session = PostgresSession('pg', conn=mock_conn)

        with session.transaction():
            session.execute('TRUNCATE TABLE "public"."users"')
            session.execute('ANALYZE "public"."users"')

        assert mock_conn.commit.call_count == 1

    def test_transaction_rolls_back_on_error(self, mock_conn):
        """Test that an error inside a transaction rolls everything back."""
        session = PostgresSession('pg', conn=mock_conn)

        with pytest.raises(RuntimeError):
            with session.transaction():
                session.execute('TRUNCATE TABLE "public"."users"')
                raise RuntimeError("copy failed")

        mock_conn.rollback.assert_called_once()
        mock_conn.commit.assert_not_called()

    def test_nested_transaction_rejected(self, mock_conn):
        """Test that nesting transactions raises RuntimeError."""
        session = PostgresSession('pg', conn=mock_conn)

        with pytest.raises(RuntimeError, match="Nested transactions"):
            with session.transaction():
                with session.transaction():
                    pass

    def test_copy_in_returns_rowcount(self, mock_conn):
        """Test that copy_in streams through copy_expert."""
        cursor_of(mock_conn).rowcount = 5
        stream = io.StringIO('1\ta\n')

        rows = PostgresSession('pg', conn=mock_conn).copy_in('public', 'users', stream)

        assert rows == 5
        assert cursor_of(mock_conn).copy_expert.call_args[0][1] is stream

    def test_close(self, mock_conn):
        """Test that close releases the connection."""
        session = PostgresSession('pg', conn=mock_conn)

        session.close()

        mock_conn.close.assert_called_once()


class TestDryRunSession:
    """Test DryRunSession class."""

    def test_mutations_logged_not_executed(self):
        """Test that execute and COPY are recorded instead of run."""
        inner = Mock()
        session = DryRunSession(inner)

        with session.transaction():
            session.execute('TRUNCATE TABLE "public"."users"')
            assert session.copy_in('public', 'users', io.StringIO('1\n')) == 0

        assert session.statements == [
            'BEGIN',
            'TRUNCATE TABLE "public"."users"',
            'COPY "public"."users" FROM STDIN',
            'COMMIT',
        ]
        inner.execute.assert_not_called()
        inner.copy_in.assert_not_called()

    def test_queries_delegated(self):
        """Test that catalog queries still reach the database."""
        inner = Mock()
        inner.query.return_value = [('users',)]

        rows = DryRunSession(inner).query('SELECT relname FROM pg_class', ['public'])

        assert rows == [('users',)]
        inner.query.assert_called_once_with('SELECT relname FROM pg_class', ['public'])


class TestOpenSession:
    """Test open_session."""

    def test_requires_conn_id(self):
        """Test that an empty connection ID is rejected."""
        with pytest.raises(ValueError):
            open_session('')

    def test_dry_run_wraps_session(self):
        """Test that dry run returns the logging wrapper."""
        assert isinstance(open_session('pg', dry_run=True), DryRunSession)
        assert isinstance(open_session('pg'), PostgresSession)
