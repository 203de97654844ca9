"""
Data Transfer Module

This module handles the actual data migration from SQL Server to PostgreSQL:
each table is read in full, split into fixed-size batches, and written with one
parameterized multi-row INSERT per batch.

A failed batch is logged and counted but never stops the remaining batches or
tables.
"""

from typing import Dict, Any, Optional, List, Sequence, Tuple
from .models import RowRecord
from .schema_extractor import SchemaExtractor
from .utils import (
    UnsafeIdentifierError,
    chunked,
    quote_identifier,
    quote_mssql_identifier,
)
import logging
import math
import time

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000


class DataTransfer:
    """Handle data transfer from SQL Server to PostgreSQL."""

    def __init__(
        self,
        source,
        target,
        batch_size: int = DEFAULT_BATCH_SIZE,
        exclude_patterns: Optional[List[str]] = None
    ):
        """
        Initialize the data transfer handler.

        Args:
            source: SQL Server handle (``session()`` and ``execute(query, params)``)
            target: Open PostgreSQL handle
            batch_size: Number of rows per INSERT statement
            exclude_patterns: Table name patterns to skip (supports wildcards)
        """
        if batch_size < 1:
            raise ValueError(f"Batch size must be at least 1, got {batch_size}")

        self.source = source
        self.target = target
        self.batch_size = batch_size
        self.extractor = SchemaExtractor(source, exclude_patterns=exclude_patterns)

    def transfer_all(self) -> List[Dict[str, Any]]:
        """
        Transfer every base table, one after another.

        Errors reading the table list are logged and re-raised; every other
        failure is recorded in that table's result.

        Returns:
            List of per-table transfer result dictionaries
        """
        results = []

        with self.source.session():
            try:
                tables = self.extractor.get_tables()
            except Exception as e:
                logger.error(f"Error migrating data: {str(e)}")
                raise

            for table in tables:
                results.append(self.transfer_table(table.name))

        failed = [r['table_name'] for r in results if not r['success']]
        logger.info(
            f"Data transfer finished for {len(results)} tables "
            f"({len(results) - len(failed)} succeeded, {len(failed)} with errors)"
        )
        return results

    def transfer_table(self, table_name: str) -> Dict[str, Any]:
        """
        Transfer all rows of one table in batches.

        The source connection must already be open.

        Args:
            table_name: Source (and target) table name

        Returns:
            Transfer result dictionary with statistics
        """
        start_time = time.time()
        logger.info(f"Starting transfer: {table_name}")

        result = {
            'table_name': table_name,
            'rows_read': 0,
            'rows_transferred': 0,
            'batches_total': 0,
            'batches_failed': 0,
            'batch_size': self.batch_size,
            'errors': [],
        }

        try:
            columns = [col.name for col in self.extractor.get_columns(table_name)]
            if not columns:
                raise UnsafeIdentifierError(f"Invalid table '{table_name}': no columns in source catalog metadata")
            rows = self._read_table(table_name, columns)
        except Exception as e:
            error_msg = f"Error reading table {table_name}: {str(e)}"
            logger.error(f"✗ {error_msg}")
            result['errors'].append(error_msg)
            return self._finish(result, start_time)

        result['rows_read'] = len(rows)
        if not rows:
            logger.info(f"No data found for table {table_name}")
            return self._finish(result, start_time)

        result['batches_total'] = math.ceil(len(rows) / self.batch_size)

        for batch_number, batch in enumerate(chunked(rows, self.batch_size), start=1):
            query, params = build_insert_statement(table_name, columns, batch)
            logger.debug(f"Executing bulk insert query: {query}")

            try:
                self.target.execute(query, params)
            except Exception as e:
                error_msg = f"Error executing bulk insert for table {table_name} (batch {batch_number}): {str(e)}"
                logger.error(f"✗ {error_msg}")
                result['errors'].append(error_msg)
                result['batches_failed'] += 1
                continue

            result['rows_transferred'] += len(batch)
            logger.info(
                f"Batch {batch_number}/{result['batches_total']}: migrated {len(batch):,} rows "
                f"({result['rows_transferred']:,}/{len(rows):,} total) for table {table_name}"
            )

        return self._finish(result, start_time)

    def _read_table(self, table_name: str, columns: List[str]) -> List[RowRecord]:
        """
        Read every row of a table in catalog column order.

        Args:
            table_name: Source table name
            columns: Column names from the catalog

        Returns:
            All rows of the table
        """
        column_list = ', '.join(quote_mssql_identifier(col) for col in columns)
        query = f"SELECT {column_list} FROM {quote_mssql_identifier(table_name)}"
        return [tuple(row) for row in self.source.execute(query)]

    def _finish(self, result: Dict[str, Any], start_time: float) -> Dict[str, Any]:
        elapsed_time = time.time() - start_time
        result['elapsed_time_seconds'] = elapsed_time
        result['success'] = len(result['errors']) == 0 and result['rows_transferred'] == result['rows_read']

        if result['success']:
            logger.info(
                f"✓ {result['table_name']}: transferred {result['rows_transferred']:,} rows "
                f"in {elapsed_time:.2f} seconds"
            )
        else:
            logger.warning(
                f"✗ {result['table_name']}: transfer completed with issues. "
                f"Read: {result['rows_read']:,}, Transferred: {result['rows_transferred']:,}, "
                f"Failed batches: {result['batches_failed']}"
            )
        return result


def build_insert_statement(
    table_name: str,
    columns: Sequence[str],
    rows: Sequence[Sequence[Any]]
) -> Tuple[str, List[Any]]:
    """
    Build one multi-row parameterized INSERT for a batch.

    Placeholders are numbered contiguously across the whole batch in row-major
    order: row ``r``, column ``c`` binds ``$(r * len(columns) + c + 1)``.

    Args:
        table_name: Target table name
        columns: Column names, aligned with each row's values
        rows: Batch of rows

    Returns:
        Tuple of (INSERT statement, flattened parameter list)

    Raises:
        ValueError: If there are no rows or a row does not match the column count
    """
    if not rows:
        raise ValueError(f"Cannot build an insert for table {table_name} without rows")

    column_count = len(columns)

    value_groups = []
    params: List[Any] = []
    for row_index, row in enumerate(rows):
        if len(row) != column_count:
            raise ValueError(
                f"Row {row_index} of table {table_name} has {len(row)} values, expected {column_count}"
            )
        placeholders = ', '.join(
            f"${row_index * column_count + col_index + 1}" for col_index in range(column_count)
        )
        value_groups.append(f"({placeholders})")
        params.extend(row)

    column_list = ', '.join(quote_identifier(col) for col in columns)
    query = f"INSERT INTO {quote_identifier(table_name)} ({column_list}) VALUES {', '.join(value_groups)};"
    return query, params


def migrate_data(
    source,
    target,
    batch_size: int = DEFAULT_BATCH_SIZE,
    exclude_tables: Optional[List[str]] = None
) -> List[Dict[str, Any]]:
    """
    Convenience function to run the data stage.

    Args:
        source: SQL Server handle
        target: Open PostgreSQL handle
        batch_size: Rows per INSERT statement
        exclude_tables: List of table patterns to exclude

    Returns:
        List of per-table transfer result dictionaries
    """
    transfer = DataTransfer(source, target, batch_size, exclude_tables)
    return transfer.transfer_all()
