"""
Table Configuration Utility Module

This module discovers the tables of a run from the dump directory
(one ``<table>.txt`` file per table) and applies the only/skip lists.
"""

from typing import Iterable, List, Optional
from mysql_pg_load.models import TableEntry
from mysql_pg_load.utils import validate_sql_identifier
import json
import logging
import os

logger = logging.getLogger(__name__)

DUMP_SUFFIX = '.txt'


def parse_table_list(value) -> List[str]:
    """
    Parse an only/skip table list.

    Accepts a list (repeated command-line flags, DAG array params) whose
    items may themselves be comma-separated, a JSON array string, or a
    comma-separated string. Names are validated and duplicates dropped.

    Args:
        value: Raw option value

    Returns:
        Table names in first-seen order

    Raises:
        ValueError: On malformed JSON, an unsupported type or an invalid name

    Examples:
        >>> parse_table_list(["users,orders", "items"])
        ['users', 'orders', 'items']
        >>> parse_table_list('["users"]')
        ['users']
    """
    if not value:
        return []

    if isinstance(value, str):
        text = value.strip()
        if text.startswith('['):
            try:
                value = json.loads(text)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid table list {value!r}: {e}") from e
        else:
            value = [text]

    if not isinstance(value, (list, tuple)):
        raise ValueError(f"Table list must be a list or string, got {type(value).__name__}")

    names: List[str] = []
    for item in value:
        for name in str(item).split(','):
            name = name.strip()
            if name and name not in names:
                names.append(validate_sql_identifier(name, "table name"))
    return names


def table_name_from_path(path: str) -> Optional[str]:
    """
    Derive the table name from a dump file path.

    Examples:
        >>> table_name_from_path("/dumps/users.txt")
        'users'
        >>> table_name_from_path("/dumps/users.txt.postgres") is None
        True
    """
    base = os.path.basename(path)
    if not base.endswith(DUMP_SUFFIX) or base == DUMP_SUFFIX:
        return None
    return base[:-len(DUMP_SUFFIX)]


def filter_tables(
    names: Iterable[str],
    only: Iterable[str] = (),
    skip: Iterable[str] = ()
) -> List[str]:
    """
    Apply only/skip lists to a set of table names.

    Args:
        names: Candidate table names
        only: If non-empty, keep only these tables
        skip: Tables to drop from the result

    Returns:
        Sorted list of table names
    """
    only_set = set(only)
    skip_set = set(skip)
    result = []
    for name in sorted(set(names)):
        if only_set and name not in only_set:
            continue
        if name in skip_set:
            logger.info(f"Skipping table {name}")
            continue
        result.append(name)

    missing = only_set - set(names)
    if missing:
        logger.warning(f"Requested tables without a dump file: {', '.join(sorted(missing))}")
    return result


def discover_tables(
    data_dir: str,
    only: Iterable[str] = (),
    skip: Iterable[str] = ()
) -> List[TableEntry]:
    """
    Discover dump files in a directory.

    Args:
        data_dir: Directory holding ``<table>.txt`` files
        only: If non-empty, keep only these tables
        skip: Tables to leave out

    Returns:
        TableEntry list sorted by table name

    Raises:
        ValueError: If the directory does not exist or a file name is not a
            valid table identifier
    """
    if not os.path.isdir(data_dir):
        raise ValueError(f"Data directory not found: {data_dir}")

    names = []
    for file_name in os.listdir(data_dir):
        name = table_name_from_path(file_name)
        if name is None or not os.path.isfile(os.path.join(data_dir, file_name)):
            continue
        names.append(validate_sql_identifier(name, "table name"))

    entries = [
        TableEntry(name=name, source_file_path=os.path.join(data_dir, name + DUMP_SUFFIX))
        for name in filter_tables(names, only, skip)
    ]
    logger.info(f"Found {len(entries)} dump files in {data_dir}")
    return entries


def entries_for_tables(
    data_dir: str,
    names: Iterable[str],
    only: Iterable[str] = (),
    skip: Iterable[str] = ()
) -> List[TableEntry]:
    """Build entries for tables known from the catalog rather than from files."""
    return [
        TableEntry(name=name, source_file_path=os.path.join(data_dir, name + DUMP_SUFFIX))
        for name in filter_tables(names, only, skip)
    ]
