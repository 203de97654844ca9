"""
SQL Server to PostgreSQL Type Mapping Module

This module maps SQL Server column data types and default expressions to their
PostgreSQL equivalents. Types without a mapping are passed through unchanged so a
single exotic column never aborts schema generation.
"""

from typing import Optional
import logging
import re

logger = logging.getLogger(__name__)


# SQL Server type -> PostgreSQL type template
TYPE_MAPPING = {
    # Numeric Types
    "int": "INTEGER",
    "float": "DOUBLE PRECISION",
    "decimal": "NUMERIC({precision}, {scale})",
    "numeric": "NUMERIC({precision}, {scale})",

    # Character Types
    "varchar": "VARCHAR({length})",
    "nvarchar": "VARCHAR({length})",

    # Date/Time Types
    "datetime": "TIMESTAMP",
    "smalldatetime": "TIMESTAMP",
    "date": "DATE",

    # Boolean Type
    "bit": "BOOLEAN",

    # UUID Type
    "uniqueidentifier": "UUID",
}

# SQL Server default functions -> PostgreSQL expressions
DEFAULT_FUNCTION_MAPPING = {
    "getdate()": "CURRENT_TIMESTAMP",
    "sysdatetime()": "CURRENT_TIMESTAMP",
    "current_timestamp": "CURRENT_TIMESTAMP",
    "getutcdate()": "(now() at time zone 'utc')",
    "newid()": "gen_random_uuid()",
    "newsequentialid()": "gen_random_uuid()",
}


def map_type(
    sql_server_type: str,
    max_length: Optional[int] = None,
    precision: Optional[int] = None,
    scale: Optional[int] = None
) -> str:
    """
    Map a SQL Server data type to PostgreSQL.

    Args:
        sql_server_type: The SQL Server data type name (INFORMATION_SCHEMA.COLUMNS.DATA_TYPE)
        max_length: Maximum length for character types (-1 for MAX)
        precision: Precision for decimal/numeric types
        scale: Scale for decimal/numeric types

    Returns:
        The PostgreSQL data type, or the input unchanged if it has no mapping
    """
    base_type = sql_server_type.lower().strip()

    if base_type not in TYPE_MAPPING:
        logger.warning(f"Data type {sql_server_type} not explicitly handled, keeping as {sql_server_type}")
        return sql_server_type

    mapped_type = TYPE_MAPPING[base_type]

    if "{length}" in mapped_type:
        # VARCHAR(MAX) reports a length of -1
        if max_length is None or max_length <= 0:
            return "TEXT"
        mapped_type = mapped_type.replace("{length}", str(max_length))

    if "{precision}" in mapped_type:
        mapped_type = mapped_type.replace("{precision}", str(precision if precision is not None else 18))
        mapped_type = mapped_type.replace("{scale}", str(scale if scale is not None else 0))

    return mapped_type


def validate_type_mapping(sql_server_type: str) -> bool:
    """
    Check if a SQL Server type has a known mapping.

    Args:
        sql_server_type: The SQL Server data type to check

    Returns:
        True if the type has a mapping, False otherwise
    """
    return sql_server_type.lower().strip() in TYPE_MAPPING


def map_default_value(sql_server_default: Optional[str], sql_server_type: Optional[str] = None) -> Optional[str]:
    """
    Map a SQL Server default value expression to PostgreSQL.

    SQL Server stores defaults wrapped in parentheses, e.g. ``((0))`` or
    ``(getdate())``. Numeric literals and known functions are unwrapped and
    translated; anything else is kept verbatim.

    Args:
        sql_server_default: Raw COLUMN_DEFAULT from INFORMATION_SCHEMA
        sql_server_type: Column data type, used for bit -> boolean literals

    Returns:
        PostgreSQL default expression or None
    """
    if not sql_server_default:
        return None

    unwrapped = sql_server_default.strip()
    while unwrapped.startswith('(') and unwrapped.endswith(')') and _is_wrapped(unwrapped):
        unwrapped = unwrapped[1:-1].strip()

    lowered = unwrapped.lower()
    if lowered in DEFAULT_FUNCTION_MAPPING:
        return DEFAULT_FUNCTION_MAPPING[lowered]

    if sql_server_type and sql_server_type.lower() == 'bit' and unwrapped in ('0', '1'):
        return 'TRUE' if unwrapped == '1' else 'FALSE'

    if re.match(r'^-?\d+(\.\d+)?$', unwrapped):
        return unwrapped

    # Unicode string literal N'...'
    if re.match(r"^N'.*'$", unwrapped, re.DOTALL):
        return unwrapped[1:]

    return sql_server_default


def _is_wrapped(expression: str) -> bool:
    """Return True if the outer parentheses enclose the whole expression."""
    depth = 0
    for index, char in enumerate(expression):
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
            if depth == 0 and index < len(expression) - 1:
                return False
    return depth == 0
