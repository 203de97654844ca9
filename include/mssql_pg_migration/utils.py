"""
Shared utility functions for the SQL Server to PostgreSQL migration pipeline.

This module provides common helper functions used across the migration modules,
including SQL identifier checks, identifier quoting, and batching.
"""

import fnmatch
import re
from typing import Collection, Iterator, List, Sequence, TypeVar

T = TypeVar('T')

# PostgreSQL reserved key words, including those that can be function or type names
RESERVED_WORDS = frozenset({
    'all', 'analyse', 'analyze', 'and', 'any', 'array', 'as', 'asc', 'asymmetric',
    'authorization', 'between', 'binary', 'both', 'case', 'cast', 'check', 'collate',
    'collation', 'column', 'concurrently', 'constraint', 'create', 'cross',
    'current_catalog', 'current_date', 'current_role', 'current_schema', 'current_time',
    'current_timestamp', 'current_user', 'default', 'deferrable', 'delete', 'desc',
    'distinct', 'do', 'else', 'end', 'except', 'exists', 'false', 'fetch', 'for',
    'foreign', 'freeze', 'from', 'full', 'grant', 'group', 'having', 'ilike', 'in',
    'initially', 'inner', 'insert', 'intersect', 'into', 'is', 'isnull', 'join', 'key',
    'lateral', 'leading', 'left', 'like', 'limit', 'localtime', 'localtimestamp',
    'natural', 'not', 'notnull', 'null', 'offset', 'on', 'only', 'or', 'order', 'outer',
    'overlaps', 'placing', 'primary', 'references', 'returning', 'right', 'select',
    'session_user', 'similar', 'some', 'symmetric', 'system_user', 'table', 'tablesample',
    'then', 'to', 'trailing', 'true', 'union', 'unique', 'update', 'user', 'using',
    'variadic', 'verbose', 'when', 'where', 'window', 'with',
})

_SIMPLE_IDENTIFIER = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')


class UnsafeIdentifierError(ValueError):
    """Raised when an identifier is not one the source catalog reported."""


def ensure_known_identifier(identifier: str, known: Collection[str], identifier_type: str = "identifier") -> str:
    """
    Check an identifier against the set of names read from the source catalog.

    Table and column names are spliced into SQL text, so only names the catalog
    itself returned in the current stage are accepted.

    Args:
        identifier: The identifier to check
        known: Names returned by the catalog query
        identifier_type: Description of the identifier type for error messages

    Returns:
        The identifier unchanged

    Raises:
        UnsafeIdentifierError: If the identifier is empty or not in ``known``
    """
    if not identifier:
        raise UnsafeIdentifierError(f"Invalid {identifier_type}: cannot be empty")

    if identifier not in known:
        raise UnsafeIdentifierError(
            f"Invalid {identifier_type} '{identifier}': not present in source catalog metadata"
        )

    return identifier


def quote_identifier(identifier: str) -> str:
    """
    Quote a PostgreSQL identifier if necessary.

    Args:
        identifier: Identifier to quote

    Returns:
        The identifier, double-quoted if it is a reserved word, contains special
        characters, or starts with a number
    """
    if identifier.lower() in RESERVED_WORDS or not _SIMPLE_IDENTIFIER.match(identifier):
        escaped = identifier.replace('"', '""')
        return f'"{escaped}"'
    return identifier


def matches_pattern(name: str, pattern: str) -> bool:
    """
    Check if a name matches a pattern with wildcard support.

    Args:
        name: Name to check
        pattern: Pattern with optional wildcards (*), matched case-insensitively

    Returns:
        True if name matches pattern
    """
    return fnmatch.fnmatch(name.lower(), pattern.lower())


def quote_mssql_identifier(identifier: str) -> str:
    """Bracket-quote a SQL Server identifier, escaping any closing bracket."""
    escaped = identifier.replace(']', ']]')
    return f"[{escaped}]"


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """
    Split a sequence into consecutive slices of at most ``size`` items.

    Raises:
        ValueError: If size is less than 1
    """
    if size < 1:
        raise ValueError(f"Batch size must be at least 1, got {size}")

    for start in range(0, len(items), size):
        yield list(items[start:start + size])
