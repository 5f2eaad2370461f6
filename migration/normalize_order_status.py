"""
Normalize legacy order statuses
- Trims and lower-cases orders.status
- Maps values outside the lifecycle to 'pending'
- Backfills is_delivered / delivered_at for delivered orders

Usage:
  python -m migration.normalize_order_status --db path/to/marketplace.db
"""
import argparse
import os
import sqlite3
from contextlib import closing

STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")


def has_column(conn: sqlite3.Connection, table: str, column: str) -> bool:
    cur = conn.execute(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in cur.fetchall())


def migrate(db_path: str) -> dict:
    """Returns counts of rows touched, keyed by step."""
    if db_path == ":memory:":
        raise ValueError("Use a file-backed DB for migration script")

    if not os.path.exists(db_path):
        raise FileNotFoundError(db_path)

    with closing(sqlite3.connect(db_path)) as conn:
        conn.execute("PRAGMA foreign_keys=ON")

        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        if "orders" not in tables:
            raise RuntimeError("orders table missing; cannot migrate")
        if not has_column(conn, "orders", "status"):
            raise RuntimeError("orders.status missing; cannot migrate")

        if not has_column(conn, "orders", "is_delivered"):
            conn.execute("ALTER TABLE orders ADD COLUMN is_delivered BOOLEAN NOT NULL DEFAULT 0")
        if not has_column(conn, "orders", "delivered_at"):
            conn.execute("ALTER TABLE orders ADD COLUMN delivered_at DATETIME")

        counts = {}
        counts["normalized"] = conn.execute(
            "UPDATE orders SET status = lower(trim(status)) WHERE status IS NOT NULL AND status != lower(trim(status))"
        ).rowcount

        placeholders = ",".join("?" for _ in STATUSES)
        counts["reset"] = conn.execute(
            f"UPDATE orders SET status = 'pending' WHERE status IS NULL OR status NOT IN ({placeholders})",
            STATUSES,
        ).rowcount

        counts["delivered"] = conn.execute(
            "UPDATE orders SET is_delivered = 1, delivered_at = COALESCE(delivered_at, CURRENT_TIMESTAMP) "
            "WHERE status = 'delivered' AND (is_delivered = 0 OR delivered_at IS NULL)"
        ).rowcount
        conn.commit()
    return counts


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--db", required=True, help="Path to SQLite database file")
    args = parser.parse_args()
    counts = migrate(args.db)
    print(", ".join(f"{k}={v}" for k, v in counts.items()))


if __name__ == "__main__":
    main()
