"""
Utility functions for the dump loading pipeline.

This module provides common utility functions including input validation,
SQL identifier and literal quoting, and formatting helpers for logging.
"""

import re
from typing import Any, Iterable


def validate_sql_identifier(identifier: str, identifier_type: str = "identifier") -> str:
    """
    Validate SQL identifiers coming from configuration or file names.

    Table names are derived from dump file names and schema names from
    configuration, so both are checked before being used in statements.

    Args:
        identifier: The identifier to validate
        identifier_type: Type description for error messages (e.g., "table name", "schema")

    Returns:
        The validated identifier (unchanged if valid)

    Raises:
        ValueError: If the identifier is invalid

    Rules:
        - Non-empty
        - Max 63 characters (PostgreSQL identifier limit)
        - Must start with letter or underscore
        - Can contain only alphanumeric characters, underscores and dollar signs

    Examples:
        >>> validate_sql_identifier("users")
        'users'
        >>> validate_sql_identifier("order_items_2023")
        'order_items_2023'
        >>> validate_sql_identifier("drop; --")  # doctest: +SKIP
        ValueError: Invalid identifier 'drop; --': ...
    """
    if not identifier:
        raise ValueError(f"Invalid {identifier_type}: cannot be empty")

    if len(identifier) > 63:
        raise ValueError(
            f"Invalid {identifier_type}: exceeds maximum length of 63 characters "
            f"(got {len(identifier)} characters)"
        )

    if not re.match(r'^[a-zA-Z_][a-zA-Z0-9_$]*$', identifier):
        raise ValueError(
            f"Invalid {identifier_type} '{identifier}': must start with letter or underscore "
            "and contain only alphanumeric characters, underscores and dollar signs"
        )

    return identifier


def quote_identifier(identifier: str) -> str:
    """
    Quote a PostgreSQL identifier safely.

    Always quotes and escapes identifiers to handle reserved words,
    mixed case, and special characters.

    Examples:
        >>> quote_identifier("users")
        '"users"'
        >>> quote_identifier('we"ird')
        '"we""ird"'
    """
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


def qualified_name(schema_name: str, table_name: str) -> str:
    """Return the quoted ``"schema"."table"`` form of a relation name."""
    return f"{quote_identifier(schema_name)}.{quote_identifier(table_name)}"


def quote_sql_literal(value: Any) -> str:
    """
    Quote a value for safe use as a SQL literal.

    Handles different data types appropriately:
    - Integers: returned as-is (no quoting)
    - Strings: single-quoted with escaped quotes

    Examples:
        >>> quote_sql_literal(123)
        '123'
        >>> quote_sql_literal("users")
        "'users'"
        >>> quote_sql_literal("O'Brien")
        "'O''Brien'"
    """
    if isinstance(value, int):
        return str(value)

    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def quote_sql_list(values: Iterable[Any]) -> str:
    """
    Build a parenthesized literal list for an ``IN`` clause.

    Examples:
        >>> quote_sql_list(["users", "orders"])
        "('users', 'orders')"
    """
    return "(" + ", ".join(quote_sql_literal(v) for v in values) + ")"


def format_bytes(num_bytes: int) -> str:
    """
    Format bytes into human-readable format.

    Examples:
        >>> format_bytes(1024)
        '1.0 KB'
        >>> format_bytes(1048576)
        '1.0 MB'
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if num_bytes < 1024.0 or unit == 'TB':
            return f"{num_bytes:.1f} {unit}"
        num_bytes /= 1024.0
    return f"{num_bytes:.1f} PB"


def truncate_string(s: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    Truncate a string to a maximum length.

    Examples:
        >>> truncate_string("short")
        'short'
        >>> truncate_string("a" * 150, max_length=20)
        'aaaaaaaaaaaaaaaaa...'
    """
    if len(s) <= max_length:
        return s
    return s[:max_length - len(suffix)] + suffix
