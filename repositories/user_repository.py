"""
Repository for user data access.
"""

import logging

from repositories.base_repository import BaseRepository
from repositories.interfaces import IUserRepository

logger = logging.getLogger("racebet.repositories.user")

_USER_COLUMNS = "user_id, username, balance_cents, is_admin, created_at"


class UserRepository(BaseRepository, IUserRepository):
    """
    Handles user registration and lookups.

    Balances are never written here; see repositories.ledger_repository.
    """

    def register(self, user_id: int, username: str | None) -> dict:
        """
        Create the user on first interaction, or refresh the display name.

        Returns:
            The user row as a dict
        """
        now = self.now()
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO users (user_id, username, balance_cents, is_admin, created_at, updated_at)
                VALUES (?, ?, 0, 0, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    username = COALESCE(excluded.username, users.username),
                    updated_at = excluded.updated_at
                """,
                (user_id, username, now, now),
            )
            cursor.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE user_id = ?", (user_id,))
            return dict(cursor.fetchone())

    def get_by_id(self, user_id: int) -> dict | None:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE user_id = ?", (user_id,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def exists(self, user_id: int) -> bool:
        return self.get_by_id(user_id) is not None

    def get_all(self, limit: int = 100, offset: int = 0) -> list[dict]:
        """All users, newest first (admin listing)."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_USER_COLUMNS} FROM users
                ORDER BY created_at DESC, user_id DESC
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            )
            return [dict(row) for row in cursor.fetchall()]

    def count(self) -> int:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM users")
            return cursor.fetchone()[0]

    def set_admin(self, user_id: int, is_admin: bool) -> bool:
        """Grant or revoke the admin role. Returns False if the user is unknown."""
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE users SET is_admin = ?, updated_at = ? WHERE user_id = ?",
                (1 if is_admin else 0, self.now(), user_id),
            )
            updated = cursor.rowcount > 0
        if updated:
            logger.info(f"Admin role {'granted to' if is_admin else 'revoked from'} user {user_id}")
        return updated

    def is_admin(self, user_id: int) -> bool:
        user = self.get_by_id(user_id)
        return bool(user and user["is_admin"])
