"""
PostgreSQL DDL Generation Module

This module generates PostgreSQL DDL statements from SQL Server schema metadata,
handling table creation with primary keys and foreign key constraints.
"""

from typing import List, Optional, Sequence
from .models import ColumnDescriptor, ForeignKeyConstraint, PrimaryKeyDescriptor
from .type_mapping import map_default_value, map_type, validate_type_mapping
from .utils import quote_identifier
import logging

logger = logging.getLogger(__name__)


class DDLGenerator:
    """Generate PostgreSQL DDL statements from schema metadata."""

    def __init__(self):
        # Diagnostics for columns whose source type had no mapping
        self.warnings: List[str] = []

    def generate_create_table(
        self,
        table_name: str,
        columns: Sequence[ColumnDescriptor],
        primary_key: Optional[PrimaryKeyDescriptor] = None
    ) -> str:
        """
        Generate CREATE TABLE statement for PostgreSQL.

        Args:
            table_name: Source table name
            columns: Column descriptors in catalog order
            primary_key: Primary key descriptor, if the table has one

        Returns:
            CREATE TABLE DDL statement terminated with ";\\n"
        """
        column_definitions = [
            self._generate_column_definition(table_name, column) for column in columns
        ]

        if primary_key and primary_key.columns:
            pk_columns = ', '.join(quote_identifier(col) for col in primary_key.columns)
            column_definitions.append(f"    PRIMARY KEY ({pk_columns})")

        return (
            f"CREATE TABLE {quote_identifier(table_name)} (\n"
            + ',\n'.join(column_definitions)
            + "\n);\n"
        )

    def generate_foreign_key(self, constraint: ForeignKeyConstraint) -> str:
        """
        Generate ALTER TABLE ADD CONSTRAINT statement for a foreign key.

        Args:
            constraint: Foreign key constraint with one or more column pairs

        Returns:
            ALTER TABLE DDL statement
        """
        columns = ', '.join(quote_identifier(col) for col in constraint.owning_columns)
        ref_columns = ', '.join(quote_identifier(col) for col in constraint.referenced_columns)

        return (
            f"ALTER TABLE {quote_identifier(constraint.owning_table)} "
            f"ADD CONSTRAINT {quote_identifier(constraint.constraint_name)} "
            f"FOREIGN KEY ({columns}) "
            f"REFERENCES {quote_identifier(constraint.referenced_table)}({ref_columns})"
        )

    def _generate_column_definition(self, table_name: str, column: ColumnDescriptor) -> str:
        """
        Generate a column definition for CREATE TABLE.

        Args:
            table_name: Owning table, used in diagnostics
            column: Column descriptor

        Returns:
            Column definition string
        """
        if not validate_type_mapping(column.source_type):
            self.warnings.append(
                f"{table_name}.{column.name}: data type {column.source_type} not explicitly handled, "
                f"keeping as {column.source_type}"
            )

        data_type = map_type(
            column.source_type,
            column.max_length,
            column.numeric_precision,
            column.numeric_scale,
        )
        nullable = 'NULL' if column.nullable else 'NOT NULL'

        definition = f"    {quote_identifier(column.name)} {data_type} {nullable}"

        default_value = map_default_value(column.default_expression, column.source_type)
        if default_value:
            definition += f" DEFAULT {default_value}"

        return definition
