"""
SQL Server to PostgreSQL Migration Utilities

This package provides utilities for migrating schemas, data and foreign keys from
Microsoft SQL Server to PostgreSQL databases using Apache Airflow.
"""

__version__ = "1.0.0"
