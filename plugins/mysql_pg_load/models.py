"""
Typed records describing the dump tables and the destination schema.

Catalog rows are parsed into these records at the catalog boundary so the
rest of the pipeline never handles raw result tuples.
"""

import dataclasses
import os
from typing import List, Optional, Tuple

PRIMARY = 'primary'
UNIQUE = 'unique'
FOREIGN = 'foreign'

EXPORT_SUFFIX = '.postgres'


@dataclasses.dataclass(frozen=True)
class TableEntry:
    """A table to load, identified by name and backed by ``<name>.txt``."""

    name: str
    source_file_path: str

    @property
    def export_file_path(self) -> str:
        return self.source_file_path + EXPORT_SUFFIX

    @property
    def has_source_file(self) -> bool:
        return os.path.isfile(self.source_file_path)


@dataclasses.dataclass(frozen=True)
class IndexDescriptor:
    """
    An index on a destination table.

    ``constraint_name`` is set when the index belongs to a primary key,
    unique or exclusion constraint. Such an index is dropped and rebuilt
    together with its constraint, never on its own.
    """

    owning_table: str
    index_name: str
    is_primary_key: bool
    create_statement: str
    constraint_name: Optional[str] = None

    @property
    def is_constraint_backed(self) -> bool:
        return self.is_primary_key or self.constraint_name is not None


@dataclasses.dataclass(frozen=True)
class KeyConstraint:
    """A primary, unique or foreign key with its full ``ALTER TABLE`` DDL."""

    constraint_name: str
    owning_table: str
    kind: str
    create_statement: str
    referenced_table: Optional[str] = None

    @property
    def is_foreign(self) -> bool:
        return self.kind == FOREIGN


@dataclasses.dataclass(frozen=True)
class SequenceBinding:
    """A sequence and every (table, column) pair it feeds."""

    sequence_name: str
    columns: Tuple[Tuple[str, str], ...]

    @property
    def tables(self) -> Tuple[str, ...]:
        return tuple(sorted({table for table, _ in self.columns}))


@dataclasses.dataclass(frozen=True)
class BooleanColumn:
    table: str
    column: str
    ordinal: int


@dataclasses.dataclass(frozen=True)
class VarcharColumn:
    table: str
    column: str
    ordinal: int
    declared_length: int


@dataclasses.dataclass(frozen=True)
class CatalogSnapshot:
    """Structural state of the destination schema captured at run start."""

    indexes: Tuple[IndexDescriptor, ...] = ()
    constraints: Tuple[KeyConstraint, ...] = ()
    sequences: Tuple[SequenceBinding, ...] = ()
    boolean_columns: Tuple[BooleanColumn, ...] = ()
    varchar_columns: Tuple[VarcharColumn, ...] = ()

    def indexes_for(self, table: str) -> List[IndexDescriptor]:
        return [i for i in self.indexes if i.owning_table == table]

    def constraints_for(self, table: str) -> List[KeyConstraint]:
        """Primary and unique constraints owned by ``table``."""
        return [
            c for c in self.constraints
            if c.owning_table == table and not c.is_foreign
        ]

    def foreign_keys(self) -> List[KeyConstraint]:
        return [c for c in self.constraints if c.is_foreign]

    def boolean_columns_for(self, table: str) -> List[BooleanColumn]:
        return [c for c in self.boolean_columns if c.table == table]

    def varchar_columns_for(self, table: str) -> List[VarcharColumn]:
        return [c for c in self.varchar_columns if c.table == table]
