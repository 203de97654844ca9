"""
SQL Server Schema Extraction Module

This module reads schema metadata from SQL Server using INFORMATION_SCHEMA and
sys catalog views, translates it into PostgreSQL DDL, and applies the resulting
script to the target database.
"""

from typing import List, Dict, Any, Optional
from .ddl_generator import DDLGenerator
from .models import ColumnDescriptor, ForeignKeyDescriptor, PrimaryKeyDescriptor, TableDescriptor
from .utils import ensure_known_identifier, matches_pattern
import logging
import time

logger = logging.getLogger(__name__)


class SchemaExtractor:
    """Extract schema information from SQL Server and create it in PostgreSQL."""

    def __init__(self, source, target=None, exclude_patterns: Optional[List[str]] = None):
        """
        Initialize the schema extractor.

        Args:
            source: SQL Server handle (``session()`` and ``execute(query, params)``)
            target: PostgreSQL handle; only needed to apply the generated script
            exclude_patterns: Table name patterns to skip (supports wildcards)
        """
        self.source = source
        self.target = target
        self.exclude_patterns = exclude_patterns or []

    def get_tables(self) -> List[TableDescriptor]:
        """
        Get all base tables (views excluded).

        Returns:
            List of table descriptors in catalog order
        """
        query = """
        SELECT TABLE_NAME
        FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_TYPE = 'BASE TABLE'
        ORDER BY TABLE_NAME
        """

        result = []
        for row in self.source.execute(query):
            table_name = row[0]

            excluded = next(
                (pattern for pattern in self.exclude_patterns if matches_pattern(table_name, pattern)),
                None
            )
            if excluded:
                logger.info(f"Excluding table {table_name} (matches pattern '{excluded}')")
                continue

            result.append(TableDescriptor(name=table_name))

        logger.info(f"Found {len(result)} base tables")
        return result

    def get_columns(self, table_name: str) -> List[ColumnDescriptor]:
        """
        Get all columns for a specific table.

        Args:
            table_name: Source table name

        Returns:
            List of column descriptors in declared order
        """
        query = """
        SELECT
            COLUMN_NAME,
            DATA_TYPE,
            IS_NULLABLE,
            COLUMN_DEFAULT,
            CHARACTER_MAXIMUM_LENGTH,
            NUMERIC_PRECISION,
            NUMERIC_SCALE
        FROM INFORMATION_SCHEMA.COLUMNS
        WHERE TABLE_NAME = %s
        ORDER BY ORDINAL_POSITION
        """

        result = []
        for col in self.source.execute(query, [table_name]):
            result.append(ColumnDescriptor(
                name=col[0],
                source_type=col[1],
                nullable=str(col[2]).upper() == 'YES',
                default_expression=col[3],
                max_length=col[4],
                numeric_precision=col[5],
                numeric_scale=col[6],
            ))

        return result

    def get_primary_key(self, table_name: str) -> Optional[PrimaryKeyDescriptor]:
        """
        Get primary key information for a table.

        Args:
            table_name: Source table name

        Returns:
            Primary key descriptor or None if no primary key exists
        """
        query = """
        SELECT kcu.COLUMN_NAME
        FROM INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc
        JOIN INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu
            ON kcu.CONSTRAINT_NAME = tc.CONSTRAINT_NAME
            AND kcu.CONSTRAINT_SCHEMA = tc.CONSTRAINT_SCHEMA
            AND kcu.TABLE_NAME = tc.TABLE_NAME
        WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY'
          AND tc.TABLE_NAME = %s
        ORDER BY kcu.ORDINAL_POSITION
        """

        rows = self.source.execute(query, [table_name])
        if not rows:
            return None

        return PrimaryKeyDescriptor(table_name=table_name, columns=tuple(row[0] for row in rows))

    def get_foreign_keys(self) -> List[ForeignKeyDescriptor]:
        """
        Get every foreign key column pair in the database.

        Returns:
            One descriptor per (constraint, owning column, referenced column)
        """
        query = """
        SELECT
            fk.name AS FK_NAME,
            tp.name AS TABLE_NAME,
            cp.name AS COLUMN_NAME,
            tr.name AS REFERENCED_TABLE_NAME,
            cr.name AS REFERENCED_COLUMN_NAME
        FROM sys.foreign_keys AS fk
        INNER JOIN sys.foreign_key_columns AS fkc
            ON fk.object_id = fkc.constraint_object_id
        INNER JOIN sys.tables AS tp
            ON fkc.parent_object_id = tp.object_id
        INNER JOIN sys.columns AS cp
            ON fkc.parent_object_id = cp.object_id AND fkc.parent_column_id = cp.column_id
        INNER JOIN sys.tables AS tr
            ON fkc.referenced_object_id = tr.object_id
        INNER JOIN sys.columns AS cr
            ON fkc.referenced_object_id = cr.object_id AND fkc.referenced_column_id = cr.column_id
        ORDER BY tp.name, fk.name, fkc.constraint_column_id
        """

        return [
            ForeignKeyDescriptor(
                constraint_name=fk[0],
                owning_table=fk[1],
                owning_column=fk[2],
                referenced_table=fk[3],
                referenced_column=fk[4],
            )
            for fk in self.source.execute(query)
        ]

    def generate_schema_script(self, generator: Optional[DDLGenerator] = None) -> Dict[str, Any]:
        """
        Read all table metadata and build a single CREATE TABLE script.

        The source connection is opened for the duration of the read. Metadata
        errors are logged and re-raised.

        Args:
            generator: DDL generator collecting type mapping diagnostics

        Returns:
            Dictionary with 'tables', 'script' and 'warnings'
        """
        generator = generator or DDLGenerator()
        statements = []
        table_names = []

        try:
            with self.source.session():
                for table in self.get_tables():
                    logger.info(f"Extracting schema for table {table.name}")
                    columns = self.get_columns(table.name)
                    primary_key = self.get_primary_key(table.name)

                    if primary_key:
                        known_columns = {col.name for col in columns}
                        for pk_column in primary_key.columns:
                            ensure_known_identifier(pk_column, known_columns, f"primary key column of {table.name}")

                    statements.append(generator.generate_create_table(table.name, columns, primary_key))
                    table_names.append(table.name)
        except Exception as e:
            logger.error(f"Error extracting schema: {str(e)}")
            raise

        logger.info(f"Generated DDL for {len(table_names)} tables")
        return {
            'tables': table_names,
            'script': ''.join(statements),
            'warnings': list(generator.warnings),
        }

    def apply_schema(self, script: str) -> Optional[str]:
        """
        Apply the whole DDL script to PostgreSQL in one execution.

        Args:
            script: Concatenated CREATE TABLE statements

        Returns:
            None on success, otherwise the error message
        """
        if self.target is None:
            raise ValueError("A target handle is required to apply the schema")

        try:
            self.target.execute(script)
        except Exception as e:
            logger.error(f"✗ Error applying schema: {str(e)}")
            return str(e)

        logger.info("✓ Schema successfully applied in PostgreSQL")
        return None

    def extract_and_apply(self) -> Dict[str, Any]:
        """
        Run the schema stage: read metadata, generate DDL and apply it.

        Returns:
            Schema stage result dictionary
        """
        start_time = time.time()
        generated = self.generate_schema_script()

        errors = []
        applied = False
        if generated['tables']:
            error = self.apply_schema(generated['script'])
            applied = error is None
            if error:
                errors.append(error)
        else:
            logger.warning("No base tables found in source, nothing to apply")

        return {
            'stage': 'schema',
            'tables': generated['tables'],
            'script': generated['script'],
            'applied': applied,
            'warnings': generated['warnings'],
            'errors': errors,
            'success': len(errors) == 0,
            'elapsed_time_seconds': time.time() - start_time,
        }


def extract_schema(source, target, exclude_tables: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Convenience function to run the schema stage.

    Args:
        source: SQL Server handle
        target: PostgreSQL handle
        exclude_tables: List of table patterns to exclude

    Returns:
        Schema stage result dictionary
    """
    extractor = SchemaExtractor(source, target, exclude_tables)
    return extractor.extract_and_apply()
