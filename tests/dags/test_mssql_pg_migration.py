"""
Tests for SQL Server to PostgreSQL Migration DAG

This module contains tests for the migration DAG and its schema utilities,
covering DAG validation, data type mapping, DDL generation and schema extraction.
"""

import os
import sys
import pytest
from unittest.mock import MagicMock

# Add parent directories to path for imports
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..'))
sys.path.insert(0, ROOT_DIR)

from include.mssql_pg_migration import type_mapping, utils
from include.mssql_pg_migration.ddl_generator import DDLGenerator
from include.mssql_pg_migration.models import (
    ColumnDescriptor,
    ForeignKeyConstraint,
    ForeignKeyDescriptor,
    PrimaryKeyDescriptor,
    group_foreign_keys,
)
from include.mssql_pg_migration.schema_extractor import SchemaExtractor, extract_schema
from catalog_fakes import FakeSource, column_row


USERS_DDL = (
    "CREATE TABLE users (\n"
    "    id INTEGER NOT NULL,\n"
    "    name VARCHAR(50) NULL,\n"
    "    PRIMARY KEY (id)\n"
    ");\n"
)


class TestDAGValidation:
    """Test DAG structure and Airflow requirements."""

    @pytest.fixture
    def dag_bag(self):
        """Create a DagBag for testing."""
        from airflow.models import DagBag
        return DagBag(dag_folder=os.path.join(ROOT_DIR, "dags"), include_examples=False)

    def test_dag_loaded(self, dag_bag):
        """Test that the migration DAG is loaded without import errors."""
        dag = dag_bag.get_dag("mssql_to_postgres_migration")
        assert dag is not None, "mssql_to_postgres_migration DAG not found"
        assert len(dag_bag.import_errors) == 0, f"Import errors: {dag_bag.import_errors}"

    def test_dag_has_required_tags(self, dag_bag):
        """Test that the DAG has required tags."""
        dag = dag_bag.get_dag("mssql_to_postgres_migration")
        assert "migration" in dag.tags, "DAG must have 'migration' tag"
        assert "etl" in dag.tags, "DAG must have 'etl' tag"

    def test_dag_has_no_retries(self, dag_bag):
        """A one-shot migration must not be retried onto a partial target."""
        dag = dag_bag.get_dag("mssql_to_postgres_migration")
        assert dag.default_args.get("retries") == 0

    def test_dag_parameters(self, dag_bag):
        """Test that the DAG has all required parameters."""
        dag = dag_bag.get_dag("mssql_to_postgres_migration")
        params = dag.params

        required_params = [
            "source_conn_id",
            "target_conn_id",
            "batch_size",
            "exclude_tables",
            "group_composite_keys",
        ]

        for param in required_params:
            assert param in params, f"Missing required parameter: {param}"

    def test_dag_tasks(self, dag_bag):
        """Test that the DAG has all expected tasks."""
        dag = dag_bag.get_dag("mssql_to_postgres_migration")
        task_ids = [task.task_id for task in dag.tasks]

        assert "migrate_schema_and_data" in task_ids
        assert "generate_migration_summary" in task_ids

    def test_dag_schedule(self, dag_bag):
        """Test that the DAG is manually triggered and never runs concurrently."""
        dag = dag_bag.get_dag("mssql_to_postgres_migration")
        assert dag.catchup is False, "Migration DAG should not catch up"
        assert dag.max_active_runs == 1, "Only one migration should run at a time"


class TestTypeMapping:
    """Test SQL Server to PostgreSQL type mapping."""

    def test_numeric_type_mapping(self):
        """Test mapping of numeric data types."""
        assert type_mapping.map_type("int") == "INTEGER"
        assert type_mapping.map_type("float") == "DOUBLE PRECISION"
        assert type_mapping.map_type("bit") == "BOOLEAN"

    def test_decimal_type_mapping(self):
        """Test mapping of decimal/numeric types with precision and scale."""
        assert type_mapping.map_type("decimal", precision=10, scale=2) == "NUMERIC(10, 2)"
        assert type_mapping.map_type("numeric", precision=18, scale=4) == "NUMERIC(18, 4)"

    def test_string_type_mapping(self):
        """Test mapping of string data types."""
        assert type_mapping.map_type("varchar", max_length=255) == "VARCHAR(255)"
        assert type_mapping.map_type("nvarchar", max_length=50) == "VARCHAR(50)"

    def test_max_type_mapping(self):
        """Test mapping of MAX character types."""
        assert type_mapping.map_type("varchar", max_length=-1) == "TEXT"
        assert type_mapping.map_type("nvarchar", max_length=None) == "TEXT"

    def test_datetime_type_mapping(self):
        """Test mapping of date/time data types."""
        assert type_mapping.map_type("date") == "DATE"
        assert type_mapping.map_type("datetime") == "TIMESTAMP"
        assert type_mapping.map_type("smalldatetime") == "TIMESTAMP"

    def test_special_type_mapping(self):
        """Test mapping of special data types."""
        assert type_mapping.map_type("uniqueidentifier") == "UUID"

    def test_case_insensitive_lookup(self):
        assert type_mapping.map_type("INT") == "INTEGER"
        assert type_mapping.map_type("NVarChar", max_length=10) == "VARCHAR(10)"

    def test_unknown_type_passes_through(self, caplog):
        """Unknown types are kept verbatim and reported."""
        assert type_mapping.map_type("xml") == "xml"
        assert type_mapping.map_type("hierarchyid") == "hierarchyid"
        assert type_mapping.map_type("MyCustomType") == "MyCustomType"
        assert "not explicitly handled" in caplog.text

    def test_validate_type_mapping(self):
        assert type_mapping.validate_type_mapping("int") is True
        assert type_mapping.validate_type_mapping("money") is False

    def test_default_value_mapping(self):
        """Test mapping of default values."""
        assert type_mapping.map_default_value(None) is None
        assert type_mapping.map_default_value("(getdate())") == "CURRENT_TIMESTAMP"
        assert type_mapping.map_default_value("(newid())") == "gen_random_uuid()"
        assert type_mapping.map_default_value("((0))") == "0"
        assert type_mapping.map_default_value("((-1.5))") == "-1.5"
        assert type_mapping.map_default_value("((1))", "bit") == "TRUE"
        assert type_mapping.map_default_value("((0))", "bit") == "FALSE"
        assert type_mapping.map_default_value("(N'active')") == "'active'"
        assert type_mapping.map_default_value("('active')") == "('active')"

    def test_default_value_keeps_unbalanced_expression(self):
        assert type_mapping.map_default_value("(1)+(2)") == "(1)+(2)"


class TestUtils:
    """Test identifier handling and batching helpers."""

    def test_identifier_quoting(self):
        """Test PostgreSQL identifier quoting."""
        # Reserved words should be quoted
        assert utils.quote_identifier("user") == '"user"'
        assert utils.quote_identifier("order") == '"order"'
        assert utils.quote_identifier("table") == '"table"'

        # Normal identifiers shouldn't be quoted
        assert utils.quote_identifier("users") == "users"
        assert utils.quote_identifier("customer_id") == "customer_id"

        # Special characters should trigger quoting
        assert utils.quote_identifier("user-id") == '"user-id"'
        assert utils.quote_identifier("1_table") == '"1_table"'
        assert utils.quote_identifier('bad"name') == '"bad""name"'

    @pytest.mark.parametrize("word", [
        "window", "only", "is", "some", "except", "intersect", "fetch", "grant", "array",
        "analyze", "authorization", "collate", "current_date", "current_user", "do",
        "returning", "similar", "variadic", "Window",
    ])
    def test_reserved_keywords_are_quoted(self, word):
        assert utils.quote_identifier(word) == f'"{word}"'

    def test_matches_pattern(self):
        assert utils.matches_pattern("Audit_Log", "audit_*") is True
        assert utils.matches_pattern("users", "audit_*") is False

    def test_mssql_identifier_quoting(self):
        assert utils.quote_mssql_identifier("users") == "[users]"
        assert utils.quote_mssql_identifier("odd]name") == "[odd]]name]"

    def test_ensure_known_identifier(self):
        assert utils.ensure_known_identifier("users", {"users", "orders"}) == "users"

        with pytest.raises(utils.UnsafeIdentifierError):
            utils.ensure_known_identifier("users; DROP TABLE x", {"users"})
        with pytest.raises(utils.UnsafeIdentifierError):
            utils.ensure_known_identifier("", {"users"})

    def test_unsafe_identifier_is_value_error(self):
        assert issubclass(utils.UnsafeIdentifierError, ValueError)

    def test_chunked(self):
        assert list(utils.chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
        assert list(utils.chunked([], 3)) == []

        with pytest.raises(ValueError):
            list(utils.chunked([1], 0))


class TestDDLGenerator:
    """Test DDL generation functionality."""

    def test_users_table(self):
        generator = DDLGenerator()
        columns = [
            ColumnDescriptor(name="id", source_type="int", nullable=False),
            ColumnDescriptor(name="name", source_type="nvarchar", nullable=True, max_length=50),
        ]
        primary_key = PrimaryKeyDescriptor(table_name="users", columns=("id",))

        assert generator.generate_create_table("users", columns, primary_key) == USERS_DDL
        assert generator.warnings == []

    def test_reserved_column_names_are_quoted(self):
        generator = DDLGenerator()
        columns = [
            ColumnDescriptor(name="window", source_type="int", nullable=False),
            ColumnDescriptor(name="only", source_type="int", nullable=True),
        ]

        assert generator.generate_create_table("events", columns) == (
            "CREATE TABLE events (\n"
            "    \"window\" INTEGER NOT NULL,\n"
            "    \"only\" INTEGER NULL\n"
            ");\n"
        )

    def test_no_primary_key_clause_without_key_columns(self):
        generator = DDLGenerator()
        columns = [ColumnDescriptor(name="id", source_type="int", nullable=False)]

        ddl = generator.generate_create_table("audit_log", columns, None)
        assert "PRIMARY KEY" not in ddl
        assert ddl == "CREATE TABLE audit_log (\n    id INTEGER NOT NULL\n);\n"

        empty_key = PrimaryKeyDescriptor(table_name="audit_log", columns=())
        assert "PRIMARY KEY" not in generator.generate_create_table("audit_log", columns, empty_key)

    def test_composite_primary_key_keeps_catalog_order(self):
        generator = DDLGenerator()
        columns = [
            ColumnDescriptor(name="a", source_type="int", nullable=False),
            ColumnDescriptor(name="b", source_type="int", nullable=False),
        ]
        primary_key = PrimaryKeyDescriptor(table_name="pairs", columns=("b", "a"))

        ddl = generator.generate_create_table("pairs", columns, primary_key)
        assert "    PRIMARY KEY (b, a)\n" in ddl

    def test_column_default_and_numeric(self):
        generator = DDLGenerator()
        columns = [
            ColumnDescriptor(name="price", source_type="decimal", nullable=False,
                             default_expression="((0))", numeric_precision=10, numeric_scale=2),
            ColumnDescriptor(name="active", source_type="bit", nullable=False, default_expression="((1))"),
            ColumnDescriptor(name="created_at", source_type="datetime", nullable=True,
                             default_expression="(getdate())"),
        ]

        ddl = generator.generate_create_table("products", columns)
        assert "    price NUMERIC(10, 2) NOT NULL DEFAULT 0,\n" in ddl
        assert "    active BOOLEAN NOT NULL DEFAULT TRUE,\n" in ddl
        assert "    created_at TIMESTAMP NULL DEFAULT CURRENT_TIMESTAMP\n" in ddl

    def test_unmapped_type_records_warning(self):
        generator = DDLGenerator()
        columns = [ColumnDescriptor(name="doc", source_type="xml", nullable=True)]

        ddl = generator.generate_create_table("documents", columns)
        assert "    doc xml NULL\n" in ddl
        assert len(generator.warnings) == 1
        assert "documents.doc" in generator.warnings[0]

    def test_reserved_names_are_quoted(self):
        generator = DDLGenerator()
        columns = [ColumnDescriptor(name="order", source_type="int", nullable=False)]

        ddl = generator.generate_create_table("user", columns, PrimaryKeyDescriptor("user", ("order",)))
        assert ddl.startswith('CREATE TABLE "user" (\n    "order" INTEGER NOT NULL,\n')
        assert 'PRIMARY KEY ("order")' in ddl

    def test_foreign_key_generation(self):
        generator = DDLGenerator()
        constraint = ForeignKeyConstraint(
            constraint_name="fk_orders_users",
            owning_table="orders",
            owning_columns=("user_id",),
            referenced_table="users",
            referenced_columns=("id",),
        )

        assert generator.generate_foreign_key(constraint) == (
            "ALTER TABLE orders ADD CONSTRAINT fk_orders_users "
            "FOREIGN KEY (user_id) REFERENCES users(id)"
        )


class TestForeignKeyGrouping:
    """Test grouping of per-column foreign key rows."""

    def test_group_composite_keys(self):
        rows = [
            ForeignKeyDescriptor("fk_lines_orders", "order_lines", "order_id", "orders", "id"),
            ForeignKeyDescriptor("fk_lines_orders", "order_lines", "order_rev", "orders", "rev"),
            ForeignKeyDescriptor("fk_lines_products", "order_lines", "product_id", "products", "id"),
        ]

        grouped = group_foreign_keys(rows)
        assert len(grouped) == 2
        assert grouped[0].owning_columns == ("order_id", "order_rev")
        assert grouped[0].referenced_columns == ("id", "rev")
        assert grouped[1].constraint_name == "fk_lines_products"

    def test_same_name_on_different_tables_is_not_merged(self):
        rows = [
            ForeignKeyDescriptor("fk_parent", "a", "parent_id", "parents", "id"),
            ForeignKeyDescriptor("fk_parent", "b", "parent_id", "parents", "id"),
        ]

        assert len(group_foreign_keys(rows)) == 2


class TestSchemaExtractor:
    """Test schema extraction functionality."""

    def test_get_columns(self):
        source = FakeSource(
            tables=["users"],
            columns={"users": [
                column_row("id", "int", nullable=False),
                column_row("name", "nvarchar", max_length=50),
                column_row("balance", "decimal", precision=12, scale=2, default="((0))"),
            ]},
        )
        extractor = SchemaExtractor(source)

        with source.session():
            columns = extractor.get_columns("users")

        assert [c.name for c in columns] == ["id", "name", "balance"]
        assert columns[0].nullable is False
        assert columns[1].max_length == 50
        assert columns[2].numeric_precision == 12
        assert columns[2].numeric_scale == 2
        assert columns[2].default_expression == "((0))"

    def test_get_tables_applies_exclusions(self):
        source = FakeSource(tables=["audit_log", "orders", "temp_table", "user_history", "users"])
        extractor = SchemaExtractor(source, exclude_patterns=["audit_*", "temp_*", "*_history"])

        with source.session():
            tables = extractor.get_tables()

        assert [t.name for t in tables] == ["orders", "users"]

    def test_get_primary_key(self):
        source = FakeSource(tables=["users", "logs"], primary_keys={"users": ["id"]})
        extractor = SchemaExtractor(source)

        with source.session():
            assert extractor.get_primary_key("users").columns == ("id",)
            assert extractor.get_primary_key("logs") is None

    def test_users_scenario_applies_single_script(self):
        source = FakeSource(
            tables=["users"],
            columns={"users": [
                column_row("id", "int", nullable=False),
                column_row("name", "nvarchar", max_length=50),
            ]},
            primary_keys={"users": ["id"]},
        )
        target = MagicMock()

        result = SchemaExtractor(source, target).extract_and_apply()

        assert result["script"] == USERS_DDL
        assert result["applied"] is True
        assert result["success"] is True
        target.execute.assert_called_once_with(USERS_DDL)
        assert source.opened == 1 and source.closed == 1

    def test_script_concatenates_tables_in_catalog_order(self):
        source = FakeSource(
            tables=["a_table", "b_table"],
            columns={
                "a_table": [column_row("id", "int", nullable=False)],
                "b_table": [column_row("code", "varchar", max_length=3)],
            },
        )
        target = MagicMock()

        result = SchemaExtractor(source, target).extract_and_apply()

        assert result["script"] == (
            "CREATE TABLE a_table (\n    id INTEGER NOT NULL\n);\n"
            "CREATE TABLE b_table (\n    code VARCHAR(3) NULL\n);\n"
        )
        assert target.execute.call_count == 1

    def test_unmapped_type_is_a_warning_not_a_failure(self, caplog):
        source = FakeSource(
            tables=["documents"],
            columns={"documents": [column_row("body", "xml")]},
        )
        target = MagicMock()

        result = SchemaExtractor(source, target).extract_and_apply()

        assert "    body xml NULL\n" in result["script"]
        assert len(result["warnings"]) == 1
        assert result["success"] is True
        unmapped = [r for r in caplog.records if "not explicitly handled" in r.getMessage()]
        assert len(unmapped) == 1

    def test_apply_failure_is_logged_not_raised(self):
        source = FakeSource(tables=["users"], columns={"users": [column_row("id", "int")]})
        target = MagicMock()
        target.execute.side_effect = Exception("syntax error at or near")

        result = SchemaExtractor(source, target).extract_and_apply()

        assert result["applied"] is False
        assert result["success"] is False
        assert "syntax error" in result["errors"][0]

    def test_metadata_failure_aborts_without_applying(self):
        source = FakeSource(tables=["users"], fail_on="INFORMATION_SCHEMA.COLUMNS")
        target = MagicMock()

        with pytest.raises(RuntimeError):
            SchemaExtractor(source, target).extract_and_apply()

        target.execute.assert_not_called()
        assert source.closed == 1

    def test_extract_schema_skips_excluded_tables(self):
        source = FakeSource(
            tables=["audit_log", "users"],
            columns={
                "audit_log": [column_row("id", "int")],
                "users": [column_row("id", "int")],
            },
        )
        target = MagicMock()

        result = extract_schema(source, target, exclude_tables=["audit_*"])

        assert result["tables"] == ["users"]
        assert "audit_log" not in result["script"]

    def test_empty_catalog_applies_nothing(self):
        source = FakeSource(tables=[])
        target = MagicMock()

        result = SchemaExtractor(source, target).extract_and_apply()

        assert result["tables"] == []
        assert result["applied"] is False
        assert result["success"] is True
        target.execute.assert_not_called()


if __name__ == "__main__":
    # Run tests with pytest
    pytest.main([__file__, "-v"])
