"""
Schema and migration management for SQLite database.
"""

import logging
import sqlite3

logger = logging.getLogger("racebet.schema")


class SchemaManager:
    """
    Owns schema creation and migrations.

    Call initialize() to ensure schema is present and migrations are applied.
    """

    def __init__(self, db_path: str, use_uri: bool = False):
        self.db_path = db_path
        self.use_uri = use_uri

    def initialize(self) -> None:
        """Create base schema and apply migrations."""
        logger.info(f"Initializing database schema: {self.db_path}")
        conn = self._connect()
        try:
            cursor = conn.cursor()
            self._create_base_schema(cursor)
            self._create_schema_migrations_table(cursor)
            self._run_migrations(cursor)
            conn.commit()
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, uri=self.use_uri)
        conn.row_factory = sqlite3.Row
        if not self.use_uri:  # Skip WAL for in-memory databases
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA busy_timeout=5000")
        return conn

    def _create_base_schema(self, cursor) -> None:
        # Users: balance of record, in cents
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                user_id INTEGER PRIMARY KEY,
                username TEXT,
                balance_cents INTEGER NOT NULL DEFAULT 0 CHECK (balance_cents >= 0),
                is_admin INTEGER NOT NULL DEFAULT 0,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            )
            """
        )

        # Audit trail: one row per balance mutation
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS ledger_entries (
                entry_id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL REFERENCES users(user_id),
                amount_cents INTEGER NOT NULL,
                balance_after_cents INTEGER NOT NULL,
                kind TEXT NOT NULL,
                reference TEXT,
                note TEXT,
                actor_id INTEGER,
                created_at INTEGER NOT NULL
            )
            """
        )

    def _create_schema_migrations_table(self, cursor) -> None:
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                name TEXT PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """
        )

    def _run_migrations(self, cursor) -> None:
        applied = {row["name"] for row in cursor.execute("SELECT name FROM schema_migrations")}
        for name, action in self._get_migrations():
            if name in applied:
                continue
            logger.info(f"Applying migration: {name}")
            action(cursor)
            cursor.execute(
                "INSERT INTO schema_migrations (name) VALUES (?)",
                (name,),
            )

    def _get_migrations(self):
        return [
            ("create_racers_table", self._migration_create_racers_table),
            ("create_races_table", self._migration_create_races_table),
            ("create_bets_table", self._migration_create_bets_table),
            ("create_payments_table", self._migration_create_payments_table),
            ("add_indexes_v1", self._migration_add_indexes_v1),
            ("add_bet_pricing_version_column", self._migration_add_bet_pricing_version_column),
        ]

    # --- Migrations ---

    def _migration_create_racers_table(self, cursor) -> None:
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS racers (
                racer_id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                odds TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                odds_revision INTEGER NOT NULL DEFAULT 1,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            )
            """
        )

    def _migration_create_races_table(self, cursor) -> None:
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS races (
                race_id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'open'
                    CHECK (status IN ('open', 'closed', 'settling', 'settled')),
                winning_racer_id INTEGER REFERENCES racers(racer_id),
                created_at INTEGER NOT NULL,
                closed_at INTEGER,
                settled_at INTEGER
            )
            """
        )

    def _migration_create_bets_table(self, cursor) -> None:
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS bets (
                bet_id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL REFERENCES users(user_id),
                race_id INTEGER NOT NULL REFERENCES races(race_id),
                racer_id INTEGER NOT NULL REFERENCES racers(racer_id),
                stake_cents INTEGER NOT NULL CHECK (stake_cents > 0),
                price TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'won', 'lost', 'canceled')),
                payout_cents INTEGER,
                created_at INTEGER NOT NULL,
                settled_at INTEGER
            )
            """
        )

    def _migration_create_payments_table(self, cursor) -> None:
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS payments (
                payment_id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL REFERENCES users(user_id),
                kind TEXT NOT NULL CHECK (kind IN ('deposit', 'withdrawal')),
                amount_cents INTEGER NOT NULL CHECK (amount_cents > 0),
                external_ref TEXT NOT NULL UNIQUE,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'completed', 'rejected')),
                details TEXT,
                created_at INTEGER NOT NULL,
                resolved_at INTEGER
            )
            """
        )

    def _migration_add_indexes_v1(self, cursor) -> None:
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_bets_race_status ON bets(race_id, status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_bets_user ON bets(user_id, created_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_bets_status ON bets(status)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_payments_user ON payments(user_id, created_at)")
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_ledger_user ON ledger_entries(user_id, entry_id)"
        )
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_races_status ON races(status)")

    def _migration_add_bet_pricing_version_column(self, cursor) -> None:
        self._add_column_if_not_exists(cursor, "bets", "pricing_version", "TEXT")

    # --- Helpers ---

    def _add_column_if_not_exists(self, cursor, table: str, column: str, col_type: str) -> None:
        cursor.execute(f"PRAGMA table_info({table})")
        columns = {row[1] for row in cursor.fetchall()}
        if column not in columns:
            cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}")
