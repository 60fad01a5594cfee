"""
Shared fixtures for the dump loading tests.
"""

import contextlib

import pytest


class RecordingSession:
    """
    In-memory stand-in for PostgresSession.

    Statements are recorded in order, COPY FROM stores the stream per table
    and COPY TO writes it back, which is what PostgreSQL returns for the
    text and boolean values used in these tests.
    """

    def __init__(self, responses=None, fail_on=None, tables=None):
        self.statements = []
        self.queries = []
        self.tables = dict(tables or {})
        self.responses = responses or (lambda statement, parameters: [])
        self.fail_on = fail_on
        self.closed = False

    def _check(self, statement):
        if self.fail_on and self.fail_on in statement:
            raise RuntimeError(f"simulated failure: {statement}")

    def query(self, statement, parameters=None):
        self.queries.append((statement, parameters))
        return self.responses(statement, parameters)

    def execute(self, statement):
        self._check(statement)
        self.statements.append(statement)

    @contextlib.contextmanager
    def transaction(self):
        self.statements.append("BEGIN")
        try:
            yield self
        except Exception:
            self.statements.append("ROLLBACK")
            raise
        self.statements.append("COMMIT")

    def copy_in(self, schema_name, table_name, stream):
        statement = f"COPY {table_name} FROM STDIN"
        self._check(statement)
        data = stream.read()
        self.tables[table_name] = data
        self.statements.append(statement)
        return data.count('\n')

    def copy_out(self, schema_name, table_name, sink):
        statement = f"COPY {table_name} TO STDOUT"
        self._check(statement)
        self.statements.append(statement)
        sink.write(self.tables.get(table_name, ''))

    def close(self):
        self.closed = True


@pytest.fixture
def recording_session():
    """Factory for RecordingSession instances."""
    return RecordingSession
