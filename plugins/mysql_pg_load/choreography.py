"""
Key and Index Choreography Module

This module generates the DDL that suspends and restores indexes and key
constraints around a bulk load, from a catalog snapshot captured at run
start.

Order of operations:
1. Before any load: drop every key constraint in scope, foreign keys first
   (a primary or unique key cannot be dropped while a foreign key uses it)
2. Inside each table's load: drop the table's plain indexes
3. After each table's load: re-add its primary/unique constraints, then
   re-create its plain indexes
4. After all tables have loaded: re-add the foreign keys

Indexes that belong to a constraint are never dropped with DROP INDEX; they
disappear with their constraint and come back when it is re-added.
"""

from typing import List
from mysql_pg_load.models import CatalogSnapshot, PRIMARY
from mysql_pg_load.utils import qualified_name, quote_identifier
import logging

logger = logging.getLogger(__name__)


class KeyChoreographer:
    """Generate drop/recreate statements for keys and indexes."""

    def __init__(self, snapshot: CatalogSnapshot, schema_name: str = 'public'):
        """
        Initialize the choreographer.

        Args:
            snapshot: Catalog snapshot of the tables in scope
            schema_name: Destination schema name
        """
        self.snapshot = snapshot
        self.schema_name = schema_name

    def drop_key_constraints(self) -> List[str]:
        """
        Generate DROP CONSTRAINT statements for every key in scope.

        Returns:
            Statements with all foreign keys before primary and unique keys
        """
        foreign = self.snapshot.foreign_keys()
        others = [c for c in self.snapshot.constraints if not c.is_foreign]
        return [
            f"ALTER TABLE {qualified_name(self.schema_name, c.owning_table)} "
            f"DROP CONSTRAINT IF EXISTS {quote_identifier(c.constraint_name)}"
            for c in foreign + others
        ]

    def drop_table_indexes(self, table_name: str) -> List[str]:
        """
        Generate DROP INDEX statements for a table's plain indexes.

        Constraint-backed indexes (primary key, unique, exclusion) are
        skipped: dropping their constraint already removed them.
        """
        return [
            f"DROP INDEX IF EXISTS {qualified_name(self.schema_name, index.index_name)}"
            for index in self.snapshot.indexes_for(table_name)
            if not index.is_constraint_backed
        ]

    def restore_table_constraints(self, table_name: str) -> List[str]:
        """
        Generate ADD CONSTRAINT statements for a table's primary/unique keys.

        The primary key comes first so later unique keys and indexes are
        built against a table that already enforces it.
        """
        constraints = sorted(
            self.snapshot.constraints_for(table_name),
            key=lambda c: (c.kind != PRIMARY, c.constraint_name),
        )
        return [c.create_statement for c in constraints]

    def recreate_table_keys(self, table_name: str) -> List[str]:
        """Generate statements restoring a table's keys and indexes after load."""
        statements = self.restore_table_constraints(table_name)
        statements.extend(
            index.create_statement
            for index in self.snapshot.indexes_for(table_name)
            if not index.is_constraint_backed
        )
        return statements

    def recreate_foreign_keys(self) -> List[str]:
        """Generate ADD CONSTRAINT statements for every foreign key in scope."""
        return [c.create_statement for c in self.snapshot.foreign_keys()]

    def run_global(self, session, statements: List[str], phase: str) -> int:
        """
        Execute schema-wide key statements, failing the run on any error.

        A failure here can leave several tables without their keys, so it
        is raised rather than reported per table.

        Args:
            session: Destination session
            statements: Statements to execute in order
            phase: Phase name for logging and error messages

        Returns:
            Number of statements executed

        Raises:
            RuntimeError: If any statement fails
        """
        for statement in statements:
            try:
                session.execute(statement)
            except Exception as e:
                raise RuntimeError(f"{phase} failed on statement: {statement}: {e}") from e
        logger.info(f"✓ {phase}: {len(statements)} statements")
        return len(statements)
