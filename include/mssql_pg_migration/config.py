"""
Migration configuration.

Connection parameters (host, port, database, user, password and driver extras
such as certificate trust) live in Airflow connections, e.g. the
AIRFLOW_CONN_MSSQL_SOURCE and AIRFLOW_CONN_POSTGRES_TARGET environment variables.
This module only reads which connections to use and how to run the pipeline:

- SOURCE_CONN_ID: SQL Server connection ID (default: mssql_source)
- TARGET_CONN_ID: PostgreSQL connection ID (default: postgres_target)
- BATCH_SIZE: Rows per INSERT statement (default: 1000)
- EXCLUDE_TABLES: Comma-separated table patterns to skip (supports wildcards)
- GROUP_COMPOSITE_FOREIGN_KEYS: Emit one ALTER per composite key (default: true)
"""

from dataclasses import dataclass, field
from typing import List, Mapping, Optional
import os

DEFAULT_SOURCE_CONN_ID = 'mssql_source'
DEFAULT_TARGET_CONN_ID = 'postgres_target'
DEFAULT_BATCH_SIZE = 1000


@dataclass(frozen=True)
class MigrationConfig:
    source_conn_id: str = DEFAULT_SOURCE_CONN_ID
    target_conn_id: str = DEFAULT_TARGET_CONN_ID
    batch_size: int = DEFAULT_BATCH_SIZE
    exclude_tables: List[str] = field(default_factory=list)
    group_composite_keys: bool = True

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'MigrationConfig':
        """Build a configuration from environment variables."""
        env = os.environ if environ is None else environ

        batch_size = int(env.get('BATCH_SIZE', str(DEFAULT_BATCH_SIZE)))
        if batch_size < 1:
            raise ValueError(f"BATCH_SIZE must be at least 1, got {batch_size}")

        exclude_tables = [
            pattern.strip() for pattern in env.get('EXCLUDE_TABLES', '').split(',') if pattern.strip()
        ]

        return cls(
            source_conn_id=env.get('SOURCE_CONN_ID', DEFAULT_SOURCE_CONN_ID),
            target_conn_id=env.get('TARGET_CONN_ID', DEFAULT_TARGET_CONN_ID),
            batch_size=batch_size,
            exclude_tables=exclude_tables,
            group_composite_keys=env.get('GROUP_COMPOSITE_FOREIGN_KEYS', 'true').lower() in ('1', 'true', 'yes'),
        )
