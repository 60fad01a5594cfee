"""
PostgreSQL Catalog Introspection Module

This module reads the structural metadata of the destination schema from
pg_catalog: indexes, key constraints, sequence-backed columns, and the
boolean and varchar columns used to normalize verification output.

Every query is read-only. Table scoping is injected as a literal IN list;
the list always comes from the dump directory listing, whose names have
already been validated as identifiers.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from mysql_pg_load.models import (
    FOREIGN,
    PRIMARY,
    UNIQUE,
    BooleanColumn,
    CatalogSnapshot,
    IndexDescriptor,
    KeyConstraint,
    SequenceBinding,
    VarcharColumn,
)
from mysql_pg_load.utils import qualified_name, quote_identifier, quote_sql_list
import logging

logger = logging.getLogger(__name__)

CONSTRAINT_KINDS = {'p': PRIMARY, 'u': UNIQUE, 'f': FOREIGN}

INDEXES_QUERY = """
SELECT
    t.relname AS table_name,
    i.relname AS index_name,
    ix.indisprimary,
    pg_get_indexdef(ix.indexrelid) AS create_statement,
    c.conname AS constraint_name
FROM pg_index ix
INNER JOIN pg_class i ON i.oid = ix.indexrelid
INNER JOIN pg_class t ON t.oid = ix.indrelid
INNER JOIN pg_namespace n ON n.oid = t.relnamespace
LEFT JOIN pg_constraint c
    ON c.conindid = ix.indexrelid
   AND c.conrelid = ix.indrelid
   AND c.contype IN ('p', 'u', 'x')
WHERE n.nspname = %s
  {scope}
ORDER BY t.relname, i.relname
"""

CONSTRAINTS_QUERY = """
SELECT
    c.conname AS constraint_name,
    t.relname AS table_name,
    c.contype,
    pg_get_constraintdef(c.oid) AS definition,
    r.relname AS referenced_table
FROM pg_constraint c
INNER JOIN pg_class t ON t.oid = c.conrelid
INNER JOIN pg_namespace n ON n.oid = t.relnamespace
LEFT JOIN pg_class r ON r.oid = c.confrelid
WHERE n.nspname = %s
  AND c.contype IN ('p', 'u', 'f')
  {scope}
ORDER BY t.relname, c.conname
"""

# Sequences referenced by column defaults (nextval) and sequences owned by
# a column (serial and identity columns)
SEQUENCES_QUERY = """
SELECT s.relname AS sequence_name, t.relname AS table_name, a.attname AS column_name
FROM pg_class s
INNER JOIN pg_namespace n ON n.oid = s.relnamespace
INNER JOIN pg_depend d
    ON d.refobjid = s.oid
   AND d.refclassid = 'pg_class'::regclass
   AND d.classid = 'pg_attrdef'::regclass
INNER JOIN pg_attrdef ad ON ad.oid = d.objid
INNER JOIN pg_class t ON t.oid = ad.adrelid
INNER JOIN pg_attribute a ON a.attrelid = ad.adrelid AND a.attnum = ad.adnum
WHERE s.relkind = 'S' AND n.nspname = %s
UNION
SELECT s.relname, t.relname, a.attname
FROM pg_class s
INNER JOIN pg_namespace n ON n.oid = s.relnamespace
INNER JOIN pg_depend d
    ON d.objid = s.oid
   AND d.classid = 'pg_class'::regclass
   AND d.refclassid = 'pg_class'::regclass
   AND d.deptype IN ('a', 'i')
INNER JOIN pg_class t ON t.oid = d.refobjid
INNER JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = d.refobjsubid
WHERE s.relkind = 'S' AND n.nspname = %s
ORDER BY 1, 2, 3
"""

COLUMNS_QUERY = """
SELECT
    t.relname AS table_name,
    a.attname AS column_name,
    (SELECT COUNT(*) FROM pg_attribute p
      WHERE p.attrelid = a.attrelid AND p.attnum > 0
        AND NOT p.attisdropped AND p.attnum < a.attnum) AS ordinal,
    a.atttypmod - 4 AS declared_length
FROM pg_attribute a
INNER JOIN pg_class t ON t.oid = a.attrelid
INNER JOIN pg_namespace n ON n.oid = t.relnamespace
WHERE n.nspname = %s
  AND t.relkind IN ('r', 'p')
  AND a.attnum > 0
  AND NOT a.attisdropped
  AND a.atttypid = %s::regtype
  {scope}
ORDER BY t.relname, a.attnum
"""

TABLES_QUERY = """
SELECT t.relname
FROM pg_class t
INNER JOIN pg_namespace n ON n.oid = t.relnamespace
WHERE n.nspname = %s
  AND t.relkind IN ('r', 'p')
ORDER BY t.relname
"""


def _scope_clause(column: str, tables: Sequence[str], referenced_column: Optional[str] = None) -> str:
    if not tables:
        return ""
    table_list = quote_sql_list(sorted(tables))
    if referenced_column:
        return f"AND ({column} IN {table_list} OR {referenced_column} IN {table_list})"
    return f"AND {column} IN {table_list}"


def _check_arity(rows: List[Tuple[Any, ...]], expected: int, what: str) -> None:
    for row in rows:
        if len(row) != expected:
            raise ValueError(
                f"Malformed catalog response for {what}: expected {expected} "
                f"columns, got {len(row)}: {row!r}"
            )


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() in ('t', 'true', '1')
    return bool(value)


class CatalogIntrospector:
    """Extract structural metadata of one PostgreSQL schema."""

    def __init__(self, session, schema_name: str = 'public'):
        """
        Initialize the catalog introspector.

        Args:
            session: Destination session (see mysql_pg_load.session)
            schema_name: Destination schema to inspect
        """
        self.session = session
        self.schema_name = schema_name

    def list_tables(self) -> List[str]:
        """List every ordinary or partitioned table of the schema."""
        rows = self.session.query(TABLES_QUERY, [self.schema_name])
        _check_arity(rows, 1, "tables")
        return [row[0] for row in rows]

    def get_indexes(self, tables: Sequence[str] = ()) -> List[IndexDescriptor]:
        """
        Get the indexes of the tables in scope.

        Args:
            tables: Table names in scope (empty = whole schema)

        Returns:
            List of IndexDescriptor
        """
        query = INDEXES_QUERY.format(scope=_scope_clause('t.relname', tables))
        rows = self.session.query(query, [self.schema_name])
        _check_arity(rows, 5, "indexes")

        indexes = [
            IndexDescriptor(
                owning_table=row[0],
                index_name=row[1],
                is_primary_key=_as_bool(row[2]),
                create_statement=row[3],
                constraint_name=row[4] or None,
            )
            for row in rows
        ]
        logger.info(f"Found {len(indexes)} indexes in schema '{self.schema_name}'")
        return indexes

    def get_key_constraints(self, tables: Sequence[str] = ()) -> List[KeyConstraint]:
        """
        Get primary, unique and foreign key constraints in scope.

        A foreign key is in scope when either its table or the table it
        references is being loaded.

        Args:
            tables: Table names in scope (empty = whole schema)

        Returns:
            List of KeyConstraint with complete ADD CONSTRAINT statements
        """
        query = CONSTRAINTS_QUERY.format(
            scope=_scope_clause('t.relname', tables, referenced_column='r.relname')
        )
        rows = self.session.query(query, [self.schema_name])
        _check_arity(rows, 5, "key constraints")

        constraints = []
        for name, table, contype, definition, referenced in rows:
            kind = CONSTRAINT_KINDS.get(contype)
            if kind is None:
                raise ValueError(f"Unexpected constraint type '{contype}' for {name}")
            create_statement = (
                f"ALTER TABLE {qualified_name(self.schema_name, table)} "
                f"ADD CONSTRAINT {quote_identifier(name)} {definition}"
            )
            constraints.append(KeyConstraint(
                constraint_name=name,
                owning_table=table,
                kind=kind,
                create_statement=create_statement,
                referenced_table=referenced or None,
            ))

        foreign_count = sum(1 for c in constraints if c.is_foreign)
        logger.info(
            f"Found {len(constraints)} key constraints ({foreign_count} foreign) "
            f"in schema '{self.schema_name}'"
        )
        return constraints

    def get_sequences(self, tables: Sequence[str] = ()) -> List[SequenceBinding]:
        """
        Get sequences feeding columns of the tables in scope.

        Bindings are grouped per sequence. A sequence used by any in-scope
        table keeps all of its bindings, including columns of tables
        outside the scope, so the reconciled value covers every consumer.

        Args:
            tables: Table names in scope (empty = whole schema)

        Returns:
            List of SequenceBinding
        """
        rows = self.session.query(SEQUENCES_QUERY, [self.schema_name, self.schema_name])
        _check_arity(rows, 3, "sequences")

        grouped: Dict[str, List[Tuple[str, str]]] = {}
        for sequence_name, table_name, column_name in rows:
            columns = grouped.setdefault(sequence_name, [])
            if (table_name, column_name) not in columns:
                columns.append((table_name, column_name))

        scope = set(tables)
        bindings = [
            SequenceBinding(sequence_name=name, columns=tuple(columns))
            for name, columns in sorted(grouped.items())
            if not scope or any(table in scope for table, _ in columns)
        ]
        logger.info(f"Found {len(bindings)} sequences in schema '{self.schema_name}'")
        return bindings

    def _get_typed_columns(self, type_name: str, tables: Sequence[str]) -> List[Tuple[Any, ...]]:
        query = COLUMNS_QUERY.format(scope=_scope_clause('t.relname', tables))
        rows = self.session.query(query, [self.schema_name, type_name])
        _check_arity(rows, 4, f"{type_name} columns")
        return rows

    def get_boolean_columns(self, tables: Sequence[str] = ()) -> List[BooleanColumn]:
        """Get boolean columns with their zero-based position."""
        return [
            BooleanColumn(table=row[0], column=row[1], ordinal=int(row[2]))
            for row in self._get_typed_columns('boolean', tables)
        ]

    def get_varchar_columns(self, tables: Sequence[str] = ()) -> List[VarcharColumn]:
        """Get length-limited varchar columns with their zero-based position."""
        return [
            VarcharColumn(
                table=row[0],
                column=row[1],
                ordinal=int(row[2]),
                declared_length=int(row[3]),
            )
            for row in self._get_typed_columns('character varying', tables)
            if int(row[3]) > 0
        ]

    def capture(self, tables: Iterable[str] = ()) -> CatalogSnapshot:
        """
        Capture everything the run needs in one snapshot.

        Args:
            tables: Table names in scope (empty = whole schema)

        Returns:
            CatalogSnapshot
        """
        scope = sorted(set(tables))
        snapshot = CatalogSnapshot(
            indexes=tuple(self.get_indexes(scope)),
            constraints=tuple(self.get_key_constraints(scope)),
            sequences=tuple(self.get_sequences(scope)),
            boolean_columns=tuple(self.get_boolean_columns(scope)),
            varchar_columns=tuple(self.get_varchar_columns(scope)),
        )
        logger.info(
            f"Captured catalog snapshot for {len(scope) or 'all'} tables: "
            f"{len(snapshot.indexes)} indexes, {len(snapshot.constraints)} constraints, "
            f"{len(snapshot.sequences)} sequences"
        )
        return snapshot
