"""
Generate migration test data in the source SQL Server database.

Creates a small schema that exercises every mapped column type, an unmapped type
(xml), nvarchar(max), SQL Server default expressions, a composite primary key and
a composite foreign key, so the migration DAG can be regression-tested end to end.
"""

import argparse
import os
import random
import sys
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
import pymssql


TABLES = ("order_lines", "orders", "users")


def parse_args():
    parser = argparse.ArgumentParser(description="Generate migration test data in SQL Server")
    parser.add_argument("--host", default=os.environ.get("MSSQL_SERVER", "localhost"), help="SQL Server host")
    parser.add_argument("--port", type=int, default=int(os.environ.get("MSSQL_PORT", "1433")), help="SQL Server port")
    parser.add_argument("--user", default=os.environ.get("MSSQL_USER", "sa"), help="SQL Server login")
    parser.add_argument("--password", default=os.environ.get("MSSQL_PASSWORD", ""), help="SQL Server password")
    parser.add_argument("--database", default=os.environ.get("MSSQL_DB", "source_db"), help="Database to create test tables in")
    parser.add_argument("--drop-existing", action="store_true", help="Drop existing test tables before recreating")
    parser.add_argument("--rows-users", type=int, default=2_500, help="Rows for the users table")
    parser.add_argument("--orders-per-user", type=int, default=3, help="Orders generated per user")
    return parser.parse_args()


def run_sql(conn, sql, params=None):
    with conn.cursor() as cur:
        if params is None:
            cur.execute(sql)
        else:
            cur.execute(sql, params)


def drop_tables(conn):
    # Children first so foreign keys never block the drop
    for name in TABLES:
        run_sql(conn, f"IF OBJECT_ID('dbo.{name}', 'U') IS NOT NULL DROP TABLE dbo.[{name}];")


def create_tables(conn):
    run_sql(
        conn,
        """
        IF OBJECT_ID('dbo.users', 'U') IS NULL
        CREATE TABLE dbo.users (
            id INT NOT NULL PRIMARY KEY,
            name NVARCHAR(50) NULL,
            email VARCHAR(255) NOT NULL,
            is_active BIT NOT NULL DEFAULT 1,
            external_id UNIQUEIDENTIFIER NOT NULL DEFAULT NEWID(),
            created_at DATETIME NOT NULL DEFAULT GETDATE(),
            last_login SMALLDATETIME NULL,
            bio NVARCHAR(MAX) NULL
        );
        """,
    )
    run_sql(
        conn,
        """
        IF OBJECT_ID('dbo.orders', 'U') IS NULL
        CREATE TABLE dbo.orders (
            id INT NOT NULL,
            revision INT NOT NULL DEFAULT 0,
            user_id INT NOT NULL,
            total DECIMAL(12, 2) NOT NULL DEFAULT 0,
            weight FLOAT NULL,
            order_date DATE NOT NULL,
            CONSTRAINT pk_orders PRIMARY KEY (id, revision),
            CONSTRAINT fk_orders_users FOREIGN KEY (user_id) REFERENCES dbo.users (id)
        );
        """,
    )
    run_sql(
        conn,
        """
        IF OBJECT_ID('dbo.order_lines', 'U') IS NULL
        CREATE TABLE dbo.order_lines (
            id INT NOT NULL PRIMARY KEY,
            order_id INT NOT NULL,
            order_revision INT NOT NULL,
            sku NVARCHAR(32) NOT NULL,
            notes XML NULL,
            CONSTRAINT fk_order_lines_orders FOREIGN KEY (order_id, order_revision)
                REFERENCES dbo.orders (id, revision)
        );
        """,
    )


def load_users(conn, row_count):
    today = datetime.now().replace(microsecond=0)
    rows = [
        (
            i,
            f"User {i}" if i % 10 else None,
            f"user{i}@example.com",
            i % 7 != 0,
            str(uuid.uuid4()),
            today - timedelta(days=i % 365),
            today - timedelta(hours=i % 48) if i % 3 else None,
            "x" * (i % 5000) if i % 11 == 0 else None,
        )
        for i in range(1, row_count + 1)
    ]
    with conn.cursor() as cur:
        cur.executemany(
            "INSERT INTO dbo.users (id, name, email, is_active, external_id, created_at, last_login, bio) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s)",
            rows,
        )


def load_orders(conn, user_count, orders_per_user):
    order_rows = []
    line_rows = []
    order_id = 0
    for user_id in range(1, user_count + 1):
        for _ in range(orders_per_user):
            order_id += 1
            order_rows.append((
                order_id,
                0,
                user_id,
                Decimal(random.randint(100, 1_000_000)) / 100,
                random.random() * 20 if order_id % 4 else None,
                date.today() - timedelta(days=order_id % 1000),
            ))
            line_rows.append((
                order_id,
                order_id,
                0,
                f"SKU-{order_id % 97:04d}",
                f"<note order=\"{order_id}\"/>" if order_id % 5 == 0 else None,
            ))

    with conn.cursor() as cur:
        cur.executemany(
            "INSERT INTO dbo.orders (id, revision, user_id, total, weight, order_date) "
            "VALUES (%s, %s, %s, %s, %s, %s)",
            order_rows,
        )
        cur.executemany(
            "INSERT INTO dbo.order_lines (id, order_id, order_revision, sku, notes) "
            "VALUES (%s, %s, %s, %s, %s)",
            line_rows,
        )


def summarize(conn):
    with conn.cursor() as cur:
        cur.execute(
            """
            SELECT 'users' AS table_name, COUNT(*) AS row_count FROM dbo.users
            UNION ALL
            SELECT 'orders', COUNT(*) FROM dbo.orders
            UNION ALL
            SELECT 'order_lines', COUNT(*) FROM dbo.order_lines
            ORDER BY table_name;
            """
        )
        return cur.fetchall()


def main():
    args = parse_args()
    conn = pymssql.connect(
        server=args.host,
        port=args.port,
        user=args.user,
        password=args.password,
        database=args.database,
        autocommit=True,
    )

    try:
        if args.drop_existing:
            drop_tables(conn)

        create_tables(conn)
        load_users(conn, args.rows_users)
        load_orders(conn, args.rows_users, args.orders_per_user)

        counts = summarize(conn)
        for table_name, row_count in counts:
            print(f"{table_name}: {row_count:,} rows")
        print("Done.")
    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(main())
