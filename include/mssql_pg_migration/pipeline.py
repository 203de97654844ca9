"""
Migration Pipeline Module

Sequences the three migration stages against one long-lived PostgreSQL
connection:

1. Schema extraction and CREATE TABLE application
2. Batched data transfer
3. Foreign key constraints

Each stage opens and closes its own SQL Server connection. Stages return
per-unit outcomes; the pipeline collects them into a single report.
"""

from typing import Dict, Any, List, Optional
from datetime import datetime
from .data_transfer import DEFAULT_BATCH_SIZE, DataTransfer
from .foreign_keys import ForeignKeyMigrator
from .schema_extractor import SchemaExtractor
import logging
import time

logger = logging.getLogger(__name__)


class MigrationPipeline:
    """Run a full SQL Server to PostgreSQL migration."""

    def __init__(
        self,
        source,
        target,
        batch_size: int = DEFAULT_BATCH_SIZE,
        exclude_tables: Optional[List[str]] = None,
        group_composite_keys: bool = True
    ):
        """
        Initialize the pipeline.

        Args:
            source: SQL Server handle, opened and closed by each stage
            target: PostgreSQL handle, held open for the whole run
            batch_size: Rows per INSERT statement
            exclude_tables: Table name patterns to skip (supports wildcards)
            group_composite_keys: Emit one ALTER per composite foreign key
        """
        self.source = source
        self.target = target
        self.batch_size = batch_size
        self.exclude_tables = exclude_tables or []
        self.group_composite_keys = group_composite_keys

    def run(self) -> Dict[str, Any]:
        """
        Run all stages in order.

        An exception escaping a stage aborts the run; it is logged and recorded
        in the report rather than raised.

        Returns:
            Migration report dictionary
        """
        start_time = time.time()
        report = {
            'schema': None,
            'data': [],
            'foreign_keys': None,
            'error': None,
            'started_at': datetime.now().isoformat(),
        }

        try:
            self.target.open()
            try:
                report['schema'] = SchemaExtractor(
                    self.source, self.target, self.exclude_tables
                ).extract_and_apply()

                report['data'] = DataTransfer(
                    self.source, self.target, self.batch_size, self.exclude_tables
                ).transfer_all()

                report['foreign_keys'] = ForeignKeyMigrator(
                    self.source, self.target, self.group_composite_keys, self.exclude_tables
                ).migrate()
            finally:
                self.target.close()
        except Exception as e:
            logger.exception(f"Migration failed: {str(e)}")
            report['error'] = f"{type(e).__name__}: {str(e)}"

        report['elapsed_time_seconds'] = time.time() - start_time
        report['success'] = self._is_successful(report)

        if report['success']:
            logger.info(f"✓ Migration completed in {report['elapsed_time_seconds']:.2f} seconds")
        else:
            logger.warning("✗ Migration completed with errors, see per-table and per-constraint results")

        return report

    def _is_successful(self, report: Dict[str, Any]) -> bool:
        if report['error'] or report['schema'] is None or report['foreign_keys'] is None:
            return False
        return (
            report['schema']['success']
            and all(result['success'] for result in report['data'])
            and report['foreign_keys']['success']
        )


def generate_migration_report(report: Dict[str, Any]) -> str:
    """
    Generate a human-readable migration report.

    Args:
        report: Report dictionary returned by MigrationPipeline.run()

    Returns:
        Formatted report string
    """
    report_lines = [
        "=" * 80,
        "SQL SERVER TO POSTGRESQL MIGRATION REPORT",
        "=" * 80,
        f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"Status: {'SUCCESS' if report.get('success') else 'COMPLETED WITH ERRORS'}",
        "",
    ]

    if report.get('error'):
        report_lines.extend([
            "RUN ABORTED",
            "-" * 40,
            f"  {report['error']}",
            "",
        ])

    schema = report.get('schema')
    if schema:
        report_lines.extend([
            "SCHEMA",
            "-" * 40,
            f"Tables: {len(schema['tables'])}",
            f"Applied: {'yes' if schema['applied'] else 'no'}",
        ])
        for warning in schema.get('warnings', []):
            report_lines.append(f"  ! {warning}")
        for error in schema.get('errors', []):
            report_lines.append(f"  ✗ {error}")
        report_lines.append("")

    data = report.get('data') or []
    if data:
        total_rows = sum(r.get('rows_transferred', 0) for r in data)
        report_lines.extend([
            "TABLE DETAILS",
            "-" * 40,
            f"Total Rows Transferred: {total_rows:,}",
        ])
        for result in data:
            status = "✓ PASS" if result['success'] else "✗ FAIL"
            report_lines.append(
                f"{status} | {result['table_name']:<30} | "
                f"{result['rows_transferred']:>10,} / {result['rows_read']:>10,} rows | "
                f"Failed batches: {result['batches_failed']}"
            )
        report_lines.append("")

    foreign_keys = report.get('foreign_keys')
    if foreign_keys:
        report_lines.extend([
            "FOREIGN KEYS",
            "-" * 40,
            f"Added: {foreign_keys['applied_count']}",
            f"Failed: {foreign_keys['failed_count']}",
        ])
        for result in foreign_keys['constraints']:
            if not result['success']:
                report_lines.append(f"  • {result['constraint_name']} ({result['owning_table']}): {result['error']}")
        report_lines.append("")

    report_lines.extend([
        "=" * 80,
        "END OF REPORT",
        "=" * 80,
    ])

    return "\n".join(report_lines)


def run_migration(
    source_conn_id: str,
    target_conn_id: str,
    batch_size: int = DEFAULT_BATCH_SIZE,
    exclude_tables: Optional[List[str]] = None,
    group_composite_keys: bool = True
) -> Dict[str, Any]:
    """
    Convenience function to run the whole migration from Airflow connection IDs.

    Args:
        source_conn_id: Airflow connection ID for SQL Server
        target_conn_id: Airflow connection ID for PostgreSQL
        batch_size: Rows per INSERT statement
        exclude_tables: List of table patterns to exclude
        group_composite_keys: Emit one ALTER per composite foreign key

    Returns:
        Migration report dictionary, including the rendered 'report' text
    """
    from .connections import MsSqlSource, PostgresTarget

    pipeline = MigrationPipeline(
        MsSqlSource(source_conn_id),
        PostgresTarget(target_conn_id),
        batch_size=batch_size,
        exclude_tables=exclude_tables,
        group_composite_keys=group_composite_keys,
    )
    report = pipeline.run()
    report['report'] = generate_migration_report(report)
    logger.info("\n" + report['report'])
    return report

