"""
Run Controller Module

Sequences the phases of a run over one destination session:

1. Discover dump files and capture the catalog snapshot (once)
2. Import: drop key constraints, load every table, re-add foreign keys,
   reconcile sequences
3. Export: re-export tables (explicitly, or implicitly for verification)
4. Verify: compare every dump with its export

Tables are processed one at a time in name order. Table-level failures are
recorded and the run continues; schema-wide failures stop the run.
"""

from typing import Any, Dict, List, Tuple
from mysql_pg_load.catalog import CatalogIntrospector
from mysql_pg_load.choreography import KeyChoreographer
from mysql_pg_load.config import MigrationConfig
from mysql_pg_load.data_transfer import TableLoader
from mysql_pg_load.models import CatalogSnapshot, TableEntry
from mysql_pg_load.sequences import SequenceReconciler
from mysql_pg_load.session import open_session
from mysql_pg_load.table_config import discover_tables, entries_for_tables
from mysql_pg_load.validation import TableExporter, TableVerifier, generate_migration_report
import dataclasses
import logging

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class RunContext:
    """Everything a phase needs, fixed at run start."""

    config: MigrationConfig
    tables: Tuple[TableEntry, ...]
    snapshot: CatalogSnapshot
    file_scoped: bool = True

    @property
    def table_names(self) -> List[str]:
        return [t.name for t in self.tables]


@dataclasses.dataclass
class RunSummary:
    """Results of a run, one list per phase."""

    tables: List[str]
    load_results: List[Dict[str, Any]] = dataclasses.field(default_factory=list)
    export_results: List[Dict[str, Any]] = dataclasses.field(default_factory=list)
    verify_results: List[Dict[str, Any]] = dataclasses.field(default_factory=list)
    sequences: Dict[str, Any] = dataclasses.field(default_factory=dict)
    report: str = ''

    @property
    def failed_tables(self) -> List[str]:
        failed = set()
        failed.update(r['table_name'] for r in self.load_results if not r.get('success'))
        failed.update(r['table_name'] for r in self.export_results if not r.get('success'))
        failed.update(r['table_name'] for r in self.verify_results if not r.get('validation_passed'))
        return sorted(failed)

    @property
    def success(self) -> bool:
        return not self.failed_tables


class MigrationRunner:
    """Run the load/export/verify phases for one configuration."""

    def __init__(self, config: MigrationConfig, session):
        """
        Initialize the runner.

        Args:
            config: Run configuration
            session: Destination session, owned by this runner for the run
        """
        if session is None:
            raise ValueError("A destination session is required")
        self.config = config
        self.session = session

    def build_context(self) -> RunContext:
        """
        Discover tables and capture the catalog snapshot.

        When there are no dump files and the run only exports, the tables
        are taken from the catalog and the snapshot covers the whole schema.

        Raises:
            ValueError: If no tables are in scope
        """
        config = self.config
        introspector = CatalogIntrospector(self.session, config.schema)

        tables = discover_tables(config.data_dir, config.only, config.skip)
        file_scoped = True

        if not tables and config.export and not config.do_import and not config.verify:
            logger.info("No dump files found; exporting tables listed in the catalog")
            tables = entries_for_tables(
                config.data_dir, introspector.list_tables(), config.only, config.skip
            )
            file_scoped = False

        if not tables:
            raise ValueError(f"No tables to process in {config.data_dir}")

        scope = [t.name for t in tables] if file_scoped else []
        snapshot = introspector.capture(scope)

        return RunContext(
            config=config,
            tables=tuple(tables),
            snapshot=snapshot,
            file_scoped=file_scoped,
        )

    def run_import(self, context: RunContext) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """
        Drop keys, load all tables, restore keys and reconcile sequences.

        Returns:
            Tuple of (load results, reconciled sequence values)
        """
        config = context.config
        choreographer = KeyChoreographer(context.snapshot, config.schema)

        choreographer.run_global(
            self.session, choreographer.drop_key_constraints(), "Drop key constraints"
        )

        loader = TableLoader(self.session, choreographer, config.schema, config.encoding)
        load_results = loader.load_tables(list(context.tables))

        # A failed table rolled back to its state after the global key drop
        restore = []
        for result in load_results:
            if not result['success']:
                restore.extend(choreographer.restore_table_constraints(result['table_name']))
        if restore:
            choreographer.run_global(self.session, restore, "Restore keys of failed tables")

        choreographer.run_global(
            self.session, choreographer.recreate_foreign_keys(), "Recreate foreign keys"
        )

        reconciler = SequenceReconciler(self.session, config.schema)
        sequences = reconciler.reconcile_all(list(context.snapshot.sequences), dry_run=config.dry_run)
        return load_results, sequences

    def run_export(self, context: RunContext) -> List[Dict[str, Any]]:
        """Export tables; existing files are only replaced on explicit export."""
        config = context.config
        exporter = TableExporter(
            self.session, context.snapshot, config.schema, config.encoding, config.dry_run
        )
        return [exporter.export_table(entry, force=config.export) for entry in context.tables]

    def run_verify(self, context: RunContext) -> List[Dict[str, Any]]:
        """Compare every dump file with its export."""
        config = context.config
        verifier = TableVerifier(
            context.snapshot,
            threshold_mb=config.diff_threshold_mb,
            sample_lines=config.sample_lines,
            encoding=config.encoding,
            dry_run=config.dry_run,
        )
        return verifier.verify_tables(list(context.tables))

    def run(self) -> RunSummary:
        """
        Run every configured phase.

        Returns:
            RunSummary with per-table results and the report

        Raises:
            ValueError: On setup errors (no tables, bad catalog response)
            RuntimeError: On schema-wide key or sequence failures
        """
        for line in self.config.describe():
            logger.info(line)

        context = self.build_context()
        summary = RunSummary(tables=context.table_names)

        if self.config.do_import:
            summary.load_results, summary.sequences = self.run_import(context)

        if self.config.wants_export:
            summary.export_results = self.run_export(context)

        if self.config.verify:
            summary.verify_results = self.run_verify(context)

        summary.report = generate_migration_report(
            summary.load_results, summary.verify_results, summary.export_results
        )
        logger.info("\n" + summary.report)

        if summary.success:
            logger.info(f"✓ Run completed for {len(context.tables)} tables")
        else:
            logger.warning(
                f"⚠ Run completed with issues: {len(summary.failed_tables)}/"
                f"{len(context.tables)} tables failed: {', '.join(summary.failed_tables)}"
            )
        return summary


def run_migration(config: MigrationConfig, session=None) -> RunSummary:
    """
    Convenience function to run a complete load.

    Args:
        config: Run configuration
        session: Optional session; by default one is opened from
            ``config.target_conn_id`` and closed afterwards

    Returns:
        RunSummary
    """
    owns_session = session is None
    if owns_session:
        session = open_session(config.target_conn_id, dry_run=config.dry_run)
    try:
        return MigrationRunner(config, session).run()
    finally:
        if owns_session:
            session.close()
