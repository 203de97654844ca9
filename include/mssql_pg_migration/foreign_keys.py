"""
Foreign Key Migration Module

Replays SQL Server foreign key constraints onto PostgreSQL once all data has been
loaded, so constraint checks never depend on table load order.
"""

from typing import Dict, Any, List, Optional, Set
from .ddl_generator import DDLGenerator
from .models import ForeignKeyConstraint, as_single_column_constraints, group_foreign_keys
from .schema_extractor import SchemaExtractor
from .utils import ensure_known_identifier, matches_pattern
import logging

logger = logging.getLogger(__name__)


class ForeignKeyMigrator:
    """Add foreign key constraints from SQL Server metadata to PostgreSQL."""

    def __init__(
        self,
        source,
        target,
        group_composite_keys: bool = True,
        exclude_patterns: Optional[List[str]] = None
    ):
        """
        Initialize the foreign key migrator.

        Args:
            source: SQL Server handle (``session()`` and ``execute(query, params)``)
            target: Open PostgreSQL handle
            group_composite_keys: Emit one ALTER per constraint with all its columns.
                When False, one single-column ALTER is issued per metadata row.
            exclude_patterns: Table name patterns to skip (supports wildcards). Constraints
                owned by or referencing a skipped table are not added.
        """
        self.source = source
        self.target = target
        self.group_composite_keys = group_composite_keys
        self.exclude_patterns = exclude_patterns or []
        self.extractor = SchemaExtractor(source)
        self.generator = DDLGenerator()

    def get_constraints(self) -> Dict[str, Any]:
        """
        Read foreign key metadata and the base table list from SQL Server.

        Returns:
            Dictionary with 'constraints' and 'known_tables'
        """
        try:
            with self.source.session():
                descriptors = self.extractor.get_foreign_keys()
                known_tables = {table.name for table in self.extractor.get_tables()}
        except Exception as e:
            logger.error(f"Error migrating foreign keys: {str(e)}")
            raise

        if self.group_composite_keys:
            constraints = group_foreign_keys(descriptors)
        else:
            constraints = as_single_column_constraints(descriptors)

        constraints = [c for c in constraints if not self._is_excluded(c)]

        logger.info(f"Found {len(descriptors)} foreign key columns in {len(constraints)} constraints")
        return {'constraints': constraints, 'known_tables': known_tables}

    def _is_excluded(self, constraint: ForeignKeyConstraint) -> bool:
        for table_name in (constraint.owning_table, constraint.referenced_table):
            for pattern in self.exclude_patterns:
                if matches_pattern(table_name, pattern):
                    logger.info(
                        f"Skipping foreign key {constraint.constraint_name} "
                        f"(table {table_name} matches pattern '{pattern}')"
                    )
                    return True
        return False

    def apply_constraint(self, constraint: ForeignKeyConstraint, known_tables: Set[str]) -> Dict[str, Any]:
        """
        Add a single foreign key constraint to PostgreSQL.

        Args:
            constraint: Foreign key constraint to add
            known_tables: Base table names reported by the source catalog

        Returns:
            Per-constraint result dictionary
        """
        result = {
            'constraint_name': constraint.constraint_name,
            'owning_table': constraint.owning_table,
            'referenced_table': constraint.referenced_table,
            'statement': None,
            'success': False,
            'error': None,
        }

        try:
            ensure_known_identifier(constraint.owning_table, known_tables, "table")
            ensure_known_identifier(constraint.referenced_table, known_tables, "referenced table")
            statement = self.generator.generate_foreign_key(constraint)
            result['statement'] = statement
            self.target.execute(statement)
        except Exception as e:
            logger.error(f"✗ Error adding foreign key {constraint.constraint_name}: {str(e)}")
            result['error'] = str(e)
            return result

        logger.info(f"✓ Added foreign key {constraint.constraint_name} on {constraint.owning_table}")
        result['success'] = True
        return result

    def migrate(self) -> Dict[str, Any]:
        """
        Run the foreign key stage.

        Returns:
            Foreign key stage result dictionary
        """
        metadata = self.get_constraints()

        results = [
            self.apply_constraint(constraint, metadata['known_tables'])
            for constraint in metadata['constraints']
        ]

        applied_count = sum(1 for r in results if r['success'])
        failed_count = len(results) - applied_count
        logger.info(f"Added {applied_count} foreign key constraints ({failed_count} failed)")

        return {
            'stage': 'foreign_keys',
            'constraints': results,
            'applied_count': applied_count,
            'failed_count': failed_count,
            'success': failed_count == 0,
        }


def migrate_foreign_keys(
    source,
    target,
    group_composite_keys: bool = True,
    exclude_tables: Optional[List[str]] = None
) -> Dict[str, Any]:
    """
    Convenience function to run the foreign key stage.

    Args:
        source: SQL Server handle
        target: Open PostgreSQL handle
        group_composite_keys: Whether to group composite keys into one statement
        exclude_tables: List of table patterns to exclude

    Returns:
        Foreign key stage result dictionary
    """
    migrator = ForeignKeyMigrator(source, target, group_composite_keys, exclude_tables)
    return migrator.migrate()
