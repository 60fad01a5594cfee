"""
Data Transfer Module

This module loads dump files into PostgreSQL tables, one table per
transaction:

1. Disable user triggers on the table
2. Drop the table's plain indexes
3. Truncate the table
4. COPY the transcoded dump in
5. Re-add primary/unique keys and re-create indexes
6. ANALYZE the table
7. Re-enable triggers and commit

If any step fails the transaction rolls back, which also restores the
triggers and indexes, and the next table is loaded anyway.
"""

from typing import Any, Dict, List
from mysql_pg_load.choreography import KeyChoreographer
from mysql_pg_load.models import TableEntry
from mysql_pg_load.transcoder import DumpTranscodingStream
from mysql_pg_load.utils import format_bytes, qualified_name
from datetime import datetime
import logging
import os
import time

logger = logging.getLogger(__name__)


class TableLoader:
    """Load dump files into PostgreSQL tables."""

    def __init__(
        self,
        session,
        choreographer: KeyChoreographer,
        schema_name: str = 'public',
        encoding: str = 'utf-8'
    ):
        """
        Initialize the table loader.

        Args:
            session: Destination session
            choreographer: Key/index choreographer built from the run snapshot
            schema_name: Destination schema name
            encoding: Text encoding of the dump files
        """
        self.session = session
        self.choreographer = choreographer
        self.schema_name = schema_name
        self.encoding = encoding

    def build_pre_load_statements(self, table_name: str) -> List[str]:
        """Statements run before COPY inside the table's transaction."""
        target = qualified_name(self.schema_name, table_name)
        statements = [f"ALTER TABLE {target} DISABLE TRIGGER USER"]
        statements.extend(self.choreographer.drop_table_indexes(table_name))
        # Foreign keys were dropped up front, so no CASCADE is needed
        statements.append(f"TRUNCATE TABLE {target}")
        return statements

    def build_post_load_statements(self, table_name: str) -> List[str]:
        """Statements run after COPY inside the table's transaction."""
        target = qualified_name(self.schema_name, table_name)
        statements = self.choreographer.recreate_table_keys(table_name)
        statements.append(f"ANALYZE {target}")
        statements.append(f"ALTER TABLE {target} ENABLE TRIGGER USER")
        return statements

    def load_table(self, entry: TableEntry) -> Dict[str, Any]:
        """
        Load one dump file.

        Args:
            entry: Table and its dump file

        Returns:
            Load result dictionary; ``success`` is False when the table's
            transaction failed
        """
        start_time = time.time()
        result: Dict[str, Any] = {
            'table_name': entry.name,
            'source_file': entry.source_file_path,
            'rows_loaded': 0,
            'success': False,
            'error': None,
        }

        try:
            file_size = os.path.getsize(entry.source_file_path)
            logger.info(f"Loading {entry.name} from {entry.source_file_path} ({format_bytes(file_size)})")

            with self.session.transaction():
                for statement in self.build_pre_load_statements(entry.name):
                    self.session.execute(statement)

                with open(entry.source_file_path, 'r', encoding=self.encoding,
                          errors='surrogateescape', newline='\n') as dump_file:
                    stream = DumpTranscodingStream(dump_file)
                    rows_loaded = self.session.copy_in(self.schema_name, entry.name, stream)

                for statement in self.build_post_load_statements(entry.name):
                    self.session.execute(statement)

            result['rows_loaded'] = rows_loaded or stream.rows_read
            result['success'] = True
        except Exception as e:
            result['error'] = str(e)
            logger.error(f"✗ Failed to load {entry.name}: {e}")

        elapsed = time.time() - start_time
        result['elapsed_time_seconds'] = elapsed
        result['completed_at'] = datetime.now().isoformat()

        if result['success']:
            rate = result['rows_loaded'] / elapsed if elapsed > 0 else 0
            logger.info(
                f"✓ Loaded {entry.name}: {result['rows_loaded']:,} rows "
                f"in {elapsed:.2f}s ({rate:,.0f} rows/sec)"
            )
        return result

    def load_tables(self, entries: List[TableEntry]) -> List[Dict[str, Any]]:
        """
        Load tables one after another; a failed table does not stop the rest.

        Args:
            entries: Tables in load order

        Returns:
            One result dictionary per table
        """
        results = [self.load_table(entry) for entry in entries]
        failed = [r['table_name'] for r in results if not r['success']]
        logger.info(f"Loaded {len(results) - len(failed)}/{len(results)} tables")
        if failed:
            logger.warning(f"Tables that failed to load: {', '.join(failed)}")
        return results
