"""
SQL identifier and value escaping utilities.

The transaction log builds its statements as text, so every value that ends
up in SQL goes through here.
"""

from datetime import datetime
from typing import Any


def escape_identifier(identifier: str) -> str:
    """
    Escape SQL identifier (table name, column name, schema name).

    Wraps identifier in double quotes and escapes any double quotes within.

    Example:
        >>> escape_identifier("transactions")
        '"transactions"'
        >>> escape_identifier('table"name')
        '"table""name"'
    """
    if not identifier:
        raise ValueError("Identifier cannot be empty")
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


def escape_qualified_name(schema: str, table: str) -> str:
    """Escape qualified table name: ``"schema"."table"``."""
    return f"{escape_identifier(schema)}.{escape_identifier(table)}"


def escape_sql_string(value: str) -> str:
    """
    Escape SQL string value (for use in SQL queries).

    Example:
        >>> escape_sql_string("O'Brien")
        "'O''Brien'"
    """
    if value is None:
        return "NULL"
    escaped = str(value).replace("'", "''")
    return f"'{escaped}'"


def sql_value(value: Any) -> str:
    """Convert Python value to SQL literal representation."""
    if value is None:
        return "NULL"
    # bool before int: isinstance(True, int) is True
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, datetime):
        return f"TIMESTAMP '{value.replace(tzinfo=None).isoformat(sep=' ')}'"
    return escape_sql_string(str(value))
