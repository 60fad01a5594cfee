"""
Tests for Export and Verification Module

These tests validate comparison-mode selection, export file handling,
dump normalization during verification, and bounded failure samples.
"""

import os

import pytest
from unittest.mock import Mock
from mysql_pg_load.models import BooleanColumn, CatalogSnapshot, TableEntry, VarcharColumn
from mysql_pg_load.validation import (
    TableExporter,
    TableVerifier,
    choose_comparison_mode,
    generate_migration_report,
)

MB = 1024 * 1024


def write_file(path, content):
    path.write_bytes(content.encode('utf-8'))


@pytest.fixture
def users_entry(tmp_path):
    """Users table entry with its dump file."""
    path = tmp_path / 'users.txt'
    write_file(path, '1\tAlice\tt\n2\tBob\tf\n')
    return TableEntry('users', str(path))


@pytest.fixture
def boolean_snapshot():
    """Snapshot where users.active is boolean."""
    return CatalogSnapshot(boolean_columns=(BooleanColumn('users', 'active', 2),))


class TestComparisonMode:
    """Test choose_comparison_mode."""

    def test_checksum_when_either_file_is_large(self):
        """Test that one file above the threshold selects checksum mode."""
        assert choose_comparison_mode(50 * MB, 150 * MB, 100) == 'checksum'
        assert choose_comparison_mode(150 * MB, 50 * MB, 100) == 'checksum'

    def test_diff_when_both_small(self):
        """Test that small files are diffed."""
        assert choose_comparison_mode(50 * MB, 60 * MB, 100) == 'diff'

    def test_threshold_is_inclusive_for_diff(self):
        """Test that a file exactly at the threshold is still diffed."""
        assert choose_comparison_mode(100 * MB, 100 * MB, 100) == 'diff'


class TestTableExporter:
    """Test TableExporter class."""

    def test_export_rewrites_booleans(self, users_entry, boolean_snapshot, recording_session):
        """Test that boolean tables are exported with 1/0 tokens."""
        session = recording_session(tables={'users': '1\tAlice\tt\n2\tBob\tf\n'})

        result = TableExporter(session, boolean_snapshot).export_table(users_entry, force=True)

        assert result['success'] is True
        assert result['rows_exported'] == 2
        with open(users_entry.export_file_path, 'rb') as f:
            assert f.read() == b'1\tAlice\t1\n2\tBob\t0\n'

    def test_implicit_export_keeps_existing_file(self, users_entry, boolean_snapshot):
        """Test that an existing export is reused unless forced."""
        write_file_path = users_entry.export_file_path
        with open(write_file_path, 'w') as f:
            f.write('old\n')
        session = Mock()

        result = TableExporter(session, boolean_snapshot).export_table(users_entry, force=False)

        assert result['exported'] is False
        session.copy_out.assert_not_called()
        with open(write_file_path) as f:
            assert f.read() == 'old\n'

    def test_explicit_export_overwrites(self, users_entry, boolean_snapshot, recording_session):
        """Test that a forced export replaces the existing file."""
        with open(users_entry.export_file_path, 'w') as f:
            f.write('old\n')
        session = recording_session(tables={'users': '1\tAlice\tt\n'})

        result = TableExporter(session, boolean_snapshot).export_table(users_entry, force=True)

        assert result['exported'] is True
        with open(users_entry.export_file_path) as f:
            assert f.read() == '1\tAlice\t1\n'

    def test_failed_export_removes_partial_file(self, users_entry):
        """Test that a failed export leaves no file behind."""
        def fail_midway(schema_name, table_name, sink):
            sink.write('1\tpartial\n')
            raise RuntimeError("connection lost")

        session = Mock()
        session.copy_out.side_effect = fail_midway

        result = TableExporter(session, CatalogSnapshot()).export_table(users_entry, force=True)

        assert result['success'] is False
        assert 'connection lost' in result['error']
        assert not os.path.exists(users_entry.export_file_path)

    def test_dry_run_writes_nothing(self, users_entry):
        """Test that dry run only hands the COPY to the session."""
        session = Mock()

        result = TableExporter(session, CatalogSnapshot(), dry_run=True).export_table(users_entry)

        assert result['exported'] is False
        session.copy_out.assert_called_once_with('public', 'users', None)
        assert not os.path.exists(users_entry.export_file_path)


class TestTableVerifier:
    """Test TableVerifier class."""

    def test_users_round_trip_diff(self, users_entry, boolean_snapshot, recording_session):
        """Test that export then verify passes for a boolean table."""
        session = recording_session(tables={'users': '1\tAlice\tt\n2\tBob\tf\n'})
        TableExporter(session, boolean_snapshot).export_table(users_entry)

        result = TableVerifier(boolean_snapshot).verify_table(users_entry)

        assert result['mode'] == 'diff'
        assert result['validation_passed'] is True
        assert result['sample'] == []

    def test_users_round_trip_checksum(self, users_entry, boolean_snapshot, recording_session):
        """Test that the checksum path agrees with the diff path."""
        session = recording_session(tables={'users': '1\tAlice\tt\n2\tBob\tf\n'})
        TableExporter(session, boolean_snapshot).export_table(users_entry)

        result = TableVerifier(boolean_snapshot, threshold_mb=0.000001).verify_table(users_entry)

        assert result['mode'] == 'checksum'
        assert result['validation_passed'] is True

    def test_diff_mismatch_sample_bounded(self, tmp_path):
        """Test that a failing diff keeps at most sample_lines lines."""
        source = tmp_path / 'items.txt'
        write_file(source, ''.join(f'{i}\tsource\n' for i in range(50)))
        write_file(tmp_path / 'items.txt.postgres', ''.join(f'{i}\texport\n' for i in range(50)))
        entry = TableEntry('items', str(source))

        result = TableVerifier(CatalogSnapshot(), sample_lines=10).verify_table(entry)

        assert result['validation_passed'] is False
        assert result['mode'] == 'diff'
        assert len(result['sample']) == 10

    def test_checksum_mismatch(self, tmp_path):
        """Test that differing content fails in checksum mode."""
        source = tmp_path / 'items.txt'
        write_file(source, '1\ta\n')
        write_file(tmp_path / 'items.txt.postgres', '1\tb\n')
        entry = TableEntry('items', str(source))

        result = TableVerifier(CatalogSnapshot(), threshold_mb=0.000001).verify_table(entry)

        assert result['mode'] == 'checksum'
        assert result['validation_passed'] is False
        assert len(result['sample']) == 2

    def test_normalizes_zero_dates_and_padding(self, tmp_path):
        """Test that zero dates and varchar padding do not count as differences."""
        source = tmp_path / 'events.txt'
        write_file(source, '1\t0000-00-00\tab   \n')
        write_file(tmp_path / 'events.txt.postgres', '1\t\\N\tab\n')
        snapshot = CatalogSnapshot(varchar_columns=(VarcharColumn('events', 'code', 2, 2),))

        result = TableVerifier(snapshot).verify_table(TableEntry('events', str(source)))

        assert result['validation_passed'] is True

    def test_multiline_values(self, tmp_path, recording_session):
        """Test that values with embedded newlines compare equal after export."""
        source = tmp_path / 'notes.txt'
        write_file(source, '1\tline1\\\nline2\n2\tsingle\n')
        entry = TableEntry('notes', str(source))
        session = recording_session(tables={'notes': '1\tline1\\nline2\n2\tsingle\n'})
        TableExporter(session, CatalogSnapshot()).export_table(entry)

        result = TableVerifier(CatalogSnapshot()).verify_table(entry)

        assert result['validation_passed'] is True

    def test_values_with_tabs(self, tmp_path, recording_session):
        """Test that a data tab written as backslash-tab round-trips."""
        source = tmp_path / 'notes.txt'
        write_file(source, '1\ta\\\tb\tt\n')
        entry = TableEntry('notes', str(source))
        snapshot = CatalogSnapshot(
            boolean_columns=(BooleanColumn('notes', 'done', 2),),
            varchar_columns=(VarcharColumn('notes', 'body', 1, 10),),
        )
        session = recording_session(tables={'notes': '1\ta\\tb\tt\n'})
        TableExporter(session, snapshot).export_table(entry)

        result = TableVerifier(snapshot).verify_table(entry)

        with open(entry.export_file_path, 'rb') as f:
            assert f.read() == b'1\ta\\\tb\t1\n'
        assert result['validation_passed'] is True
        assert result['sample'] == []

    def test_missing_export_file(self, users_entry, boolean_snapshot):
        """Test that a missing export fails verification with an error."""
        result = TableVerifier(boolean_snapshot).verify_table(users_entry)

        assert result['validation_passed'] is False
        assert 'Export file not found' in result['error']

    def test_dry_run_skips_comparison(self, users_entry, boolean_snapshot):
        """Test that dry run reports the comparison as skipped."""
        result = TableVerifier(boolean_snapshot, dry_run=True).verify_table(users_entry)

        assert result['mode'] == 'skipped'
        assert result['validation_passed'] is True


class TestMigrationReport:
    """Test generate_migration_report."""

    def test_report_contents(self):
        """Test that load and verification outcomes appear in the report."""
        load_results = [
            {'table_name': 'users', 'success': True, 'rows_loaded': 2, 'elapsed_time_seconds': 1.0},
            {'table_name': 'orders', 'success': False, 'error': 'boom', 'elapsed_time_seconds': 0.5},
        ]
        verify_results = [
            {'table_name': 'users', 'validation_passed': True, 'mode': 'diff', 'sample': []},
        ]

        report = generate_migration_report(load_results, verify_results)

        assert 'DUMP LOAD REPORT' in report
        assert 'Tables Loaded: 1/2' in report
        assert 'Total Rows Loaded: 2' in report
        assert 'boom' in report
        assert 'Tables Verified: 1/1' in report
