"""
Export and Verification Module

This module re-exports loaded tables from PostgreSQL in the dump's encoding
and compares them with the original dump files.

Export writes ``<table>.txt.postgres`` next to each dump file. Verification
normalizes the dump on the fly (zero dates, boolean tokens, varchar padding)
and compares it with the export:
- diff mode: unified diff of the two files
- checksum mode: MD5 of both, used when either file is larger than the
  size threshold, trading per-row detail for bounded run time

Only the first few result lines are kept per table.
"""

from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple
from mysql_pg_load.models import CatalogSnapshot, TableEntry
from mysql_pg_load.transcoder import ExportTranscodingWriter, normalize_source_lines
from mysql_pg_load.utils import format_bytes, truncate_string
from datetime import datetime
import difflib
import hashlib
import itertools
import logging
import os
import time

logger = logging.getLogger(__name__)

DIFF_MODE = 'diff'
CHECKSUM_MODE = 'checksum'

BYTES_PER_MB = 1024 * 1024
CHECKSUM_BLOCK_SIZE = 1024 * 1024


def choose_comparison_mode(source_size: int, export_size: int, threshold_mb: float) -> str:
    """
    Pick the comparison strategy for a pair of files.

    Args:
        source_size: Dump file size in bytes
        export_size: Export file size in bytes
        threshold_mb: Size limit for a full diff, in MB

    Returns:
        'checksum' if either file exceeds the threshold, else 'diff'

    Examples:
        >>> choose_comparison_mode(50 * 1024 * 1024, 150 * 1024 * 1024, 100)
        'checksum'
        >>> choose_comparison_mode(1024, 2048, 100)
        'diff'
    """
    limit = threshold_mb * BYTES_PER_MB
    if source_size > limit or export_size > limit:
        return CHECKSUM_MODE
    return DIFF_MODE


def _split_physical(rows: Iterable[str]) -> Iterator[str]:
    # Normalized rows keep escaped newlines; export files are compared per physical line
    for row in rows:
        parts = row.split('\n')
        for part in parts[:-1]:
            yield part + '\n'
        if parts[-1]:
            yield parts[-1]


class TableExporter:
    """Export PostgreSQL tables into files in the dump's encoding."""

    def __init__(
        self,
        session,
        snapshot: CatalogSnapshot,
        schema_name: str = 'public',
        encoding: str = 'utf-8',
        dry_run: bool = False
    ):
        """
        Initialize the exporter.

        Args:
            session: Destination session
            snapshot: Catalog snapshot (boolean columns decide token rewriting)
            schema_name: Destination schema name
            encoding: Text encoding of the dump files
            dry_run: Log the COPY without writing files
        """
        self.session = session
        self.snapshot = snapshot
        self.schema_name = schema_name
        self.encoding = encoding
        self.dry_run = dry_run

    def export_table(self, entry: TableEntry, force: bool = False) -> Dict[str, Any]:
        """
        Export one table to ``<table>.txt.postgres``.

        Args:
            entry: Table to export
            force: Overwrite an existing export file (explicit export);
                otherwise an existing file is kept (implicit export)

        Returns:
            Export result dictionary
        """
        path = entry.export_file_path
        result: Dict[str, Any] = {
            'table_name': entry.name,
            'export_file': path,
            'exported': False,
            'rows_exported': 0,
            'success': True,
            'error': None,
        }

        if os.path.exists(path) and not force:
            logger.info(f"Keeping existing export for {entry.name}: {path}")
            return result

        rewrite_booleans = bool(self.snapshot.boolean_columns_for(entry.name))

        if self.dry_run:
            self.session.copy_out(self.schema_name, entry.name, None)
            return result

        start_time = time.time()
        try:
            with open(path, 'w', encoding=self.encoding,
                      errors='surrogateescape', newline='\n') as export_file:
                writer = ExportTranscodingWriter(export_file, rewrite_booleans)
                self.session.copy_out(self.schema_name, entry.name, writer)
                result['rows_exported'] = writer.finish()
            result['exported'] = True
        except Exception as e:
            result['success'] = False
            result['error'] = str(e)
            logger.error(f"✗ Failed to export {entry.name}: {e}")
            # A partial file would be mistaken for a complete export later
            if os.path.exists(path):
                os.remove(path)
            return result

        elapsed = time.time() - start_time
        logger.info(
            f"✓ Exported {entry.name}: {result['rows_exported']:,} rows in {elapsed:.2f}s -> {path}"
        )
        return result


class TableVerifier:
    """Compare dump files with their PostgreSQL exports."""

    def __init__(
        self,
        snapshot: CatalogSnapshot,
        threshold_mb: float = 100,
        sample_lines: int = 10,
        encoding: str = 'utf-8',
        dry_run: bool = False
    ):
        """
        Initialize the verifier.

        Args:
            snapshot: Catalog snapshot (boolean/varchar columns drive normalization)
            threshold_mb: Size above which checksums replace the diff
            sample_lines: Maximum number of result lines kept per table
            encoding: Text encoding of the dump and export files
            dry_run: Log the comparison without running it
        """
        self.snapshot = snapshot
        self.threshold_mb = threshold_mb
        self.sample_lines = sample_lines
        self.encoding = encoding
        self.dry_run = dry_run

    def _open(self, path: str):
        return open(path, 'r', encoding=self.encoding, errors='surrogateescape', newline='\n')

    def _normalized_source(self, entry: TableEntry, source_file) -> Iterator[str]:
        rewrite_booleans = bool(self.snapshot.boolean_columns_for(entry.name))
        varchar_lengths = {
            c.ordinal: c.declared_length
            for c in self.snapshot.varchar_columns_for(entry.name)
        }
        return normalize_source_lines(source_file, rewrite_booleans, varchar_lengths)

    def _compare_diff(self, entry: TableEntry) -> List[str]:
        with self._open(entry.source_file_path) as source_file:
            source_lines = list(_split_physical(self._normalized_source(entry, source_file)))
        with self._open(entry.export_file_path) as export_file:
            export_lines = list(export_file)

        diff = difflib.unified_diff(
            source_lines,
            export_lines,
            fromfile=entry.source_file_path,
            tofile=entry.export_file_path,
        )
        return [line.rstrip('\n') for line in itertools.islice(diff, self.sample_lines)]

    def _compare_checksum(self, entry: TableEntry) -> Tuple[bool, List[str]]:
        source_hash = hashlib.md5()
        with self._open(entry.source_file_path) as source_file:
            for line in self._normalized_source(entry, source_file):
                source_hash.update(line.encode(self.encoding, errors='surrogateescape'))

        export_hash = hashlib.md5()
        with open(entry.export_file_path, 'rb') as export_file:
            for block in iter(lambda: export_file.read(CHECKSUM_BLOCK_SIZE), b''):
                export_hash.update(block)

        matched = source_hash.hexdigest() == export_hash.hexdigest()
        sample = [
            f"{source_hash.hexdigest()}  {entry.source_file_path} (normalized)",
            f"{export_hash.hexdigest()}  {entry.export_file_path}",
        ]
        return matched, sample[:self.sample_lines]

    def verify_table(self, entry: TableEntry) -> Dict[str, Any]:
        """
        Verify one table.

        Args:
            entry: Table whose dump and export files are compared

        Returns:
            Verification result dictionary with ``validation_passed``,
            ``mode`` and up to ``sample_lines`` lines in ``sample``
        """
        result: Dict[str, Any] = {
            'table_name': entry.name,
            'mode': None,
            'validation_passed': False,
            'sample': [],
            'error': None,
            'validation_time': datetime.now().isoformat(),
        }

        if not entry.has_source_file:
            result['error'] = f"Dump file not found: {entry.source_file_path}"
            logger.warning(f"✗ Cannot verify {entry.name}: {result['error']}")
            return result

        if self.dry_run:
            result['mode'] = 'skipped'
            result['validation_passed'] = True
            logger.info(f"[dry-run] compare {entry.source_file_path} with {entry.export_file_path}")
            return result

        if not os.path.exists(entry.export_file_path):
            result['error'] = f"Export file not found: {entry.export_file_path}"
            logger.warning(f"✗ Cannot verify {entry.name}: {result['error']}")
            return result

        source_size = os.path.getsize(entry.source_file_path)
        export_size = os.path.getsize(entry.export_file_path)
        mode = choose_comparison_mode(source_size, export_size, self.threshold_mb)
        result['mode'] = mode

        if mode == CHECKSUM_MODE:
            logger.info(
                f"Verifying {entry.name} by checksum "
                f"({format_bytes(source_size)} / {format_bytes(export_size)})"
            )
            result['validation_passed'], result['sample'] = self._compare_checksum(entry)
        else:
            result['sample'] = self._compare_diff(entry)
            result['validation_passed'] = not result['sample']

        if result['validation_passed']:
            logger.info(f"✓ Verification passed for {entry.name} ({mode})")
        else:
            logger.warning(f"✗ Verification failed for {entry.name} ({mode}):")
            for line in result['sample']:
                logger.warning(f"    {truncate_string(line, 200)}")
        return result

    def verify_tables(self, entries: List[TableEntry]) -> List[Dict[str, Any]]:
        """Verify tables one after another; failures do not stop the rest."""
        return [self.verify_table(entry) for entry in entries]


def generate_migration_report(
    load_results: Optional[List[Dict[str, Any]]] = None,
    verify_results: Optional[List[Dict[str, Any]]] = None,
    export_results: Optional[List[Dict[str, Any]]] = None
) -> str:
    """
    Generate a human-readable load/verification report.

    Args:
        load_results: Results from TableLoader.load_tables
        verify_results: Results from TableVerifier.verify_tables
        export_results: Results from TableExporter.export_table

    Returns:
        Formatted report string
    """
    report_lines = [
        "=" * 80,
        "DUMP LOAD REPORT",
        "=" * 80,
        f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        "",
    ]

    if load_results:
        loaded = [r for r in load_results if r.get('success')]
        total_rows = sum(r.get('rows_loaded', 0) for r in loaded)
        total_time = sum(r.get('elapsed_time_seconds', 0) for r in load_results)
        avg_rate = total_rows / total_time if total_time > 0 else 0

        report_lines.extend([
            "LOAD",
            "-" * 40,
            f"Tables Loaded: {len(loaded)}/{len(load_results)}",
            f"Total Rows Loaded: {total_rows:,}",
            f"Total Time: {total_time:.2f} seconds",
            f"Average Load Rate: {avg_rate:,.0f} rows/second",
            "",
        ])
        for result in load_results:
            if result.get('success'):
                report_lines.append(
                    f"✓ PASS | {result['table_name']:<30} | {result.get('rows_loaded', 0):>10,} rows"
                )
            else:
                report_lines.append(
                    f"✗ FAIL | {result['table_name']:<30} | {truncate_string(str(result.get('error')), 60)}"
                )
        report_lines.append("")

    failed_exports = [r for r in (export_results or []) if not r.get('success')]
    if failed_exports:
        report_lines.extend(["EXPORT FAILURES", "-" * 40])
        for result in failed_exports:
            report_lines.append(f"  • {result['table_name']}: {result.get('error')}")
        report_lines.append("")

    if verify_results:
        passed = [r for r in verify_results if r.get('validation_passed')]
        report_lines.extend([
            "VERIFICATION",
            "-" * 40,
            f"Tables Verified: {len(passed)}/{len(verify_results)}",
            "",
        ])
        for result in verify_results:
            status = "✓ PASS" if result.get('validation_passed') else "✗ FAIL"
            mode = result.get('mode') or 'n/a'
            report_lines.append(f"{status} | {result['table_name']:<30} | {mode}")
            if not result.get('validation_passed'):
                if result.get('error'):
                    report_lines.append(f"    {result['error']}")
                for line in result.get('sample', []):
                    report_lines.append(f"    {truncate_string(line, 120)}")
        report_lines.append("")

    report_lines.extend([
        "=" * 80,
        "END OF REPORT",
        "=" * 80,
    ])

    return "\n".join(report_lines)
