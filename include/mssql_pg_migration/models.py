"""
Schema Descriptor Models

Immutable snapshots of SQL Server catalog objects. Each migration stage builds
these from catalog metadata at the start of its own pass.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple


# One table row, positionally aligned with the table's catalog column order
RowRecord = Tuple[Any, ...]


@dataclass(frozen=True)
class TableDescriptor:
    """A base table discovered in the source catalog."""

    name: str


@dataclass(frozen=True)
class ColumnDescriptor:
    """A single column of a source table."""

    name: str
    source_type: str
    nullable: bool = True
    default_expression: Optional[str] = None
    max_length: Optional[int] = None
    numeric_precision: Optional[int] = None
    numeric_scale: Optional[int] = None


@dataclass(frozen=True)
class PrimaryKeyDescriptor:
    """Primary key columns of a table, in key order."""

    table_name: str
    columns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ForeignKeyDescriptor:
    """One (owning column, referenced column) pair of a foreign key constraint."""

    constraint_name: str
    owning_table: str
    owning_column: str
    referenced_table: str
    referenced_column: str


@dataclass(frozen=True)
class ForeignKeyConstraint:
    """A foreign key constraint with all of its column pairs."""

    constraint_name: str
    owning_table: str
    owning_columns: Tuple[str, ...]
    referenced_table: str
    referenced_columns: Tuple[str, ...]


def group_foreign_keys(descriptors: List[ForeignKeyDescriptor]) -> List[ForeignKeyConstraint]:
    """
    Collapse per-column foreign key rows into one constraint per key.

    Rows are grouped by (owning table, constraint name). Group order follows the
    first appearance of each constraint and column pairs keep their row order.

    Args:
        descriptors: Foreign key rows as returned by the catalog query

    Returns:
        List of grouped foreign key constraints
    """
    groups: Dict[Tuple[str, str], List[ForeignKeyDescriptor]] = {}
    for fk in descriptors:
        groups.setdefault((fk.owning_table, fk.constraint_name), []).append(fk)

    result = []
    for (owning_table, constraint_name), rows in groups.items():
        result.append(ForeignKeyConstraint(
            constraint_name=constraint_name,
            owning_table=owning_table,
            owning_columns=tuple(row.owning_column for row in rows),
            referenced_table=rows[0].referenced_table,
            referenced_columns=tuple(row.referenced_column for row in rows),
        ))
    return result


def as_single_column_constraints(descriptors: List[ForeignKeyDescriptor]) -> List[ForeignKeyConstraint]:
    """Wrap each foreign key row as its own single-column constraint."""
    return [
        ForeignKeyConstraint(
            constraint_name=fk.constraint_name,
            owning_table=fk.owning_table,
            owning_columns=(fk.owning_column,),
            referenced_table=fk.referenced_table,
            referenced_columns=(fk.referenced_column,),
        )
        for fk in descriptors
    ]
