"""
Tests for Table Configuration Utility Module
"""

import pytest
from mysql_pg_load.table_config import (
    discover_tables,
    entries_for_tables,
    filter_tables,
    parse_table_list,
    table_name_from_path,
)


class TestParseTableList:
    """Test parse_table_list function."""

    def test_list_input(self):
        """Test plain list input."""
        assert parse_table_list(['users', 'orders']) == ['users', 'orders']

    def test_json_string(self):
        """Test JSON array string input."""
        assert parse_table_list('["users", "orders"]') == ['users', 'orders']

    def test_comma_separated(self):
        """Test comma-separated string input."""
        assert parse_table_list('users, orders') == ['users', 'orders']

    def test_list_with_comma_items(self):
        """Test repeated command-line flags carrying comma lists."""
        assert parse_table_list(['users,orders', 'items']) == ['users', 'orders', 'items']

    def test_duplicates_dropped(self):
        """Test that repeated names are kept once."""
        assert parse_table_list(['users', 'orders,users']) == ['users', 'orders']

    def test_empty_values(self):
        """Test None and empty inputs."""
        assert parse_table_list(None) == []
        assert parse_table_list('') == []
        assert parse_table_list([]) == []

    @pytest.mark.parametrize('value', [
        'users; DROP TABLE orders',
        '["users", "bad-name"]',
        '[not json',
        {'users': True},
    ])
    def test_invalid_values(self, value):
        """Test that bad names, malformed JSON and unsupported types raise ValueError."""
        with pytest.raises(ValueError):
            parse_table_list(value)


class TestTableDiscovery:
    """Test dump file discovery."""

    @pytest.fixture
    def dump_dir(self, tmp_path):
        """Directory with dumps, exports and unrelated files."""
        for name in ('users.txt', 'orders.txt', 'users.txt.postgres', 'notes.csv'):
            (tmp_path / name).write_text('')
        return tmp_path

    def test_table_name_from_path(self):
        """Test deriving table names from file names."""
        assert table_name_from_path('/dumps/users.txt') == 'users'
        assert table_name_from_path('/dumps/users.txt.postgres') is None
        assert table_name_from_path('/dumps/.txt') is None

    def test_discover_sorted(self, dump_dir):
        """Test that only dump files are found, in name order."""
        entries = discover_tables(str(dump_dir))

        assert [e.name for e in entries] == ['orders', 'users']
        assert entries[1].source_file_path == str(dump_dir / 'users.txt')
        assert entries[1].export_file_path == str(dump_dir / 'users.txt.postgres')

    def test_only_and_skip(self, dump_dir):
        """Test only/skip filtering."""
        assert [e.name for e in discover_tables(str(dump_dir), only=['users'])] == ['users']
        assert [e.name for e in discover_tables(str(dump_dir), skip=['users'])] == ['orders']

    def test_missing_directory(self, tmp_path):
        """Test that a missing directory raises ValueError."""
        with pytest.raises(ValueError, match="Data directory not found"):
            discover_tables(str(tmp_path / 'missing'))

    def test_invalid_table_file_name(self, tmp_path):
        """Test that a dump file name that is not an identifier is rejected."""
        (tmp_path / 'bad-name.txt').write_text('')

        with pytest.raises(ValueError, match="Invalid table name"):
            discover_tables(str(tmp_path))

    def test_filter_tables_warns_on_missing(self, caplog):
        """Test that requested tables without a dump are reported."""
        result = filter_tables(['users'], only=['users', 'ghosts'])

        assert result == ['users']
        assert 'ghosts' in caplog.text

    def test_entries_for_catalog_tables(self, tmp_path):
        """Test building entries for tables that have no dump file."""
        entries = entries_for_tables(str(tmp_path), ['users', 'orders'], skip=['orders'])

        assert [e.name for e in entries] == ['users']
        assert entries[0].has_source_file is False
