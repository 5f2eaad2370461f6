import os
import sqlite3
import tempfile

import pytest

from migration.normalize_order_status import migrate


def create_legacy_db(path: str):
    conn = sqlite3.connect(path)
    try:
        conn.execute("CREATE TABLE orders (id INTEGER PRIMARY KEY, status TEXT)")
        conn.executemany(
            "INSERT INTO orders (status) VALUES (?)",
            [(" Delivered ",), ("SHIPPED",), ("on hold",), (None,), ("cancelled",)],
        )
        conn.commit()
    finally:
        conn.close()


def test_migration_normalizes_statuses_and_backfills_delivery():
    with tempfile.TemporaryDirectory() as tmp:
        db_path = os.path.join(tmp, "legacy.db")
        create_legacy_db(db_path)

        counts = migrate(db_path)
        assert counts == {"normalized": 2, "reset": 2, "delivered": 1}

        conn = sqlite3.connect(db_path)
        try:
            rows = conn.execute("SELECT status, is_delivered, delivered_at FROM orders ORDER BY id").fetchall()
        finally:
            conn.close()
        assert [r[0] for r in rows] == ["delivered", "shipped", "pending", "pending", "cancelled"]
        assert rows[0][1] == 1 and rows[0][2] is not None
        assert all(r[1] == 0 for r in rows[1:])

        # second run has nothing left to do
        assert migrate(db_path) == {"normalized": 0, "reset": 0, "delivered": 0}


def test_migration_refuses_memory_and_missing_files():
    with pytest.raises(ValueError):
        migrate(":memory:")
    with pytest.raises(FileNotFoundError):
        migrate("/nonexistent/marketplace.db")


def test_migration_requires_orders_table():
    with tempfile.TemporaryDirectory() as tmp:
        db_path = os.path.join(tmp, "empty.db")
        sqlite3.connect(db_path).close()
        with pytest.raises(RuntimeError):
            migrate(db_path)
