import sqlite3

import pytest

from infrastructure.schema_manager import SchemaManager


def _tables(db_path):
    conn = sqlite3.connect(db_path)
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
    finally:
        conn.close()
    return {row[0] for row in rows}


def test_schema_manager_initializes_tables(tmp_path):
    """Test that SchemaManager creates all required tables."""
    db_path = str(tmp_path / "test.db")
    SchemaManager(db_path).initialize()

    required = {
        "users",
        "ledger_entries",
        "racers",
        "races",
        "bets",
        "payments",
        "schema_migrations",
    }
    assert required.issubset(_tables(db_path))


def test_initialize_is_idempotent(tmp_path):
    db_path = str(tmp_path / "test.db")
    SchemaManager(db_path).initialize()
    SchemaManager(db_path).initialize()

    conn = sqlite3.connect(db_path)
    try:
        names = [row[0] for row in conn.execute("SELECT name FROM schema_migrations")]
    finally:
        conn.close()
    assert len(names) == len(set(names))
    assert "add_bet_pricing_version_column" in names


def test_balance_floor_enforced_by_schema(tmp_path):
    db_path = str(tmp_path / "test.db")
    SchemaManager(db_path).initialize()

    conn = sqlite3.connect(db_path)
    try:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO users (user_id, username, balance_cents, created_at, updated_at) "
                "VALUES (1, 'x', -1, 0, 0)"
            )
    finally:
        conn.close()


def test_payment_reference_is_unique(tmp_path):
    db_path = str(tmp_path / "test.db")
    SchemaManager(db_path).initialize()

    conn = sqlite3.connect(db_path)
    try:
        conn.execute(
            "INSERT INTO users (user_id, username, balance_cents, created_at, updated_at) VALUES (1, 'x', 0, 0, 0)"
        )
        insert = (
            "INSERT INTO payments (user_id, kind, amount_cents, external_ref, created_at) "
            "VALUES (1, 'deposit', 100, 'ref-1', 0)"
        )
        conn.execute(insert)
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(insert)
    finally:
        conn.close()
