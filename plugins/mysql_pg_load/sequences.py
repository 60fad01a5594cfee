"""
Sequence Reconciliation Module

After COPY loads explicit values into sequence-backed columns, each sequence
is advanced to the highest value found in any column it feeds, so future
inserts do not collide with loaded rows.

The highest loaded value only approximates the source AUTO_INCREMENT
counter: rows deleted from the tail of a source table before the dump are
not visible, so the sequence can restart below the source's counter and
reissue those ids.
"""

from typing import Any, Dict, List, Optional
from mysql_pg_load.models import SequenceBinding
from mysql_pg_load.utils import qualified_name, quote_identifier, quote_sql_literal
import logging

logger = logging.getLogger(__name__)


class SequenceReconciler:
    """Reset sequences to the maximum value over all of their columns."""

    def __init__(self, session, schema_name: str = 'public'):
        """
        Initialize the reconciler.

        Args:
            session: Destination session
            schema_name: Destination schema name
        """
        self.session = session
        self.schema_name = schema_name

    def build_statement(self, binding: SequenceBinding) -> str:
        """
        Build the single setval statement for a sequence.

        The value is the greatest of each bound column's MAX. When every
        column is empty the sequence restarts so that nextval returns 1.
        """
        maxima = ", ".join(
            f"(SELECT MAX({quote_identifier(column)}) "
            f"FROM {qualified_name(self.schema_name, table)})"
            for table, column in binding.columns
        )
        sequence = quote_sql_literal(qualified_name(self.schema_name, binding.sequence_name))
        return (
            f"SELECT setval({sequence}, "
            f"COALESCE(GREATEST({maxima}), 1), "
            f"GREATEST({maxima}) IS NOT NULL)"
        )

    def reconcile(self, binding: SequenceBinding) -> Optional[Any]:
        """
        Reconcile one sequence.

        Returns:
            The value the sequence was set to, or None in dry-run mode
        """
        statement = self.build_statement(binding)
        try:
            rows = self.session.query(statement)
        except Exception as e:
            raise RuntimeError(
                f"Sequence reconciliation failed for {binding.sequence_name}: {statement}: {e}"
            ) from e

        value = rows[0][0] if rows else None
        columns = ", ".join(f"{t}.{c}" for t, c in binding.columns)
        logger.info(f"Reset sequence {binding.sequence_name} ({columns}) to {value}")
        return value

    def reconcile_all(self, bindings: List[SequenceBinding], dry_run: bool = False) -> Dict[str, Any]:
        """
        Reconcile every sequence in scope.

        Args:
            bindings: Sequences from the catalog snapshot
            dry_run: Log the statements instead of running them

        Returns:
            Mapping of sequence name to its new value
        """
        results: Dict[str, Any] = {}
        for binding in bindings:
            if dry_run:
                self.session.execute(self.build_statement(binding))
                results[binding.sequence_name] = None
                continue
            results[binding.sequence_name] = self.reconcile(binding)

        logger.info(f"Reconciled {len(results)} sequences")
        return results
