"""
SQL Server to PostgreSQL Migration DAG

This DAG performs a one-shot schema and data migration from SQL Server to PostgreSQL.
It handles:
1. Schema extraction from SQL Server and CREATE TABLE application in PostgreSQL
2. Batched data transfer with parameterized multi-row inserts
3. Foreign key creation after all data is loaded

All stages run sequentially inside a single task so that the PostgreSQL connection
is held for the whole run. Per-table and per-constraint failures are logged and
reported without failing the task.
"""

from airflow.decorators import dag, task
from airflow.models.param import Param
from pendulum import datetime
from typing import Dict, Any
import logging

from include.mssql_pg_migration import pipeline
from include.mssql_pg_migration.config import MigrationConfig

logger = logging.getLogger(__name__)

# Param defaults come from SOURCE_CONN_ID, TARGET_CONN_ID, BATCH_SIZE, EXCLUDE_TABLES
# and GROUP_COMPOSITE_FOREIGN_KEYS
env_config = MigrationConfig.from_env()


@dag(
    dag_id="mssql_to_postgres_migration",
    start_date=datetime(2025, 1, 1),
    schedule=None,
    catchup=False,
    max_active_runs=1,
    is_paused_upon_creation=False,
    doc_md=__doc__,
    default_args={
        "owner": "data-team",
        # No retries: the target may already hold a partial schema
        "retries": 0,
    },
    params={
        "source_conn_id": Param(
            default=env_config.source_conn_id,
            type="string",
            description="SQL Server source connection ID (env: SOURCE_CONN_ID)"
        ),
        "target_conn_id": Param(
            default=env_config.target_conn_id,
            type="string",
            description="PostgreSQL target connection ID (env: TARGET_CONN_ID)"
        ),
        "batch_size": Param(
            default=env_config.batch_size,
            type="integer",
            minimum=1,
            description="Number of rows per INSERT statement (env: BATCH_SIZE)"
        ),
        "exclude_tables": Param(
            default=env_config.exclude_tables,
            type="array",
            description="List of table patterns to exclude (supports wildcards)"
        ),
        "group_composite_keys": Param(
            default=env_config.group_composite_keys,
            type="boolean",
            description="Emit one ALTER TABLE per composite foreign key instead of one per column"
        ),
    },
    tags=["migration", "mssql", "postgres", "etl"],
)
def mssql_to_postgres_migration():
    """
    Main DAG for SQL Server to PostgreSQL migration.
    """

    @task
    def migrate_schema_and_data(**context) -> Dict[str, Any]:
        """Run schema, data and foreign key stages against one target connection."""
        params = context["params"]
        logger.info(
            f"Migrating from '{params['source_conn_id']}' to '{params['target_conn_id']}' "
            f"with batch size {params['batch_size']}"
        )

        report = pipeline.run_migration(
            source_conn_id=params["source_conn_id"],
            target_conn_id=params["target_conn_id"],
            batch_size=params["batch_size"],
            exclude_tables=params.get("exclude_tables", []),
            group_composite_keys=params.get("group_composite_keys", True),
        )

        # Keep XCom small: the DDL script and row statistics are in the task log
        summary = {
            "success": report["success"],
            "error": report["error"],
            "tables": report["schema"]["tables"] if report["schema"] else [],
            "rows_transferred": sum(r["rows_transferred"] for r in report["data"]),
            "failed_tables": [r["table_name"] for r in report["data"] if not r["success"]],
            "failed_constraints": [
                r["constraint_name"]
                for r in (report["foreign_keys"] or {}).get("constraints", [])
                if not r["success"]
            ],
            "report": report["report"],
        }
        return summary

    @task
    def generate_migration_summary(summary: Dict[str, Any]) -> str:
        """Log the final migration report."""
        logger.info("\n" + summary["report"])

        if summary["success"]:
            logger.info(
                f"Migration complete: {len(summary['tables'])} tables, "
                f"{summary['rows_transferred']:,} rows"
            )
            return "Migration complete"

        if summary["error"]:
            logger.error(f"Migration aborted: {summary['error']}")
        if summary["failed_tables"]:
            logger.warning(f"Tables with errors: {', '.join(summary['failed_tables'])}")
        if summary["failed_constraints"]:
            logger.warning(f"Foreign keys not added: {', '.join(summary['failed_constraints'])}")
        return "Migration completed with errors"

    generate_migration_summary(migrate_schema_and_data())


# Instantiate the DAG
mssql_to_postgres_migration()
