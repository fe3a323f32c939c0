"""
Repository for the balance of record and its audit trail.

`apply_balance_delta` is the single primitive that mutates a balance. It runs
on the caller's cursor so bet placement, settlement, cancellation and payment
application can compose it with their own writes in one transaction.
"""

from __future__ import annotations

import logging
import time

from domain.exceptions import InsufficientFundsError, NotFoundError
from domain.models.ledger_entry import EntryKind
from repositories.base_repository import BaseRepository
from repositories.interfaces import ILedgerRepository
from services import error_codes

logger = logging.getLogger("racebet.repositories.ledger")


def apply_balance_delta(
    cursor,
    user_id: int,
    delta_cents: int,
    kind: str,
    *,
    reference: str | None = None,
    note: str | None = None,
    actor_id: int | None = None,
    now: int | None = None,
) -> int:
    """
    Add delta_cents to a user's balance and write the ledger entry.

    Must run inside a transaction opened with BEGIN IMMEDIATE. The floor check
    and the update are one statement, so a concurrent debit can never slip
    between a read and a write.

    Returns:
        The new balance in cents

    Raises:
        NotFoundError: If the user does not exist
        InsufficientFundsError: If the delta would take the balance below zero
    """
    now = now if now is not None else int(time.time())
    cursor.execute(
        """
        UPDATE users
        SET balance_cents = balance_cents + ?, updated_at = ?
        WHERE user_id = ? AND balance_cents + ? >= 0
        """,
        (delta_cents, now, user_id, delta_cents),
    )
    if cursor.rowcount == 0:
        cursor.execute("SELECT balance_cents FROM users WHERE user_id = ?", (user_id,))
        row = cursor.fetchone()
        if row is None:
            raise NotFoundError(f"User {user_id} not found.", code=error_codes.USER_NOT_FOUND)
        raise InsufficientFundsError(row["balance_cents"], -delta_cents)

    cursor.execute("SELECT balance_cents FROM users WHERE user_id = ?", (user_id,))
    new_balance = cursor.fetchone()["balance_cents"]
    cursor.execute(
        """
        INSERT INTO ledger_entries
            (user_id, amount_cents, balance_after_cents, kind, reference, note, actor_id, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (user_id, delta_cents, new_balance, kind, reference, note, actor_id, now),
    )
    return new_balance


class LedgerRepository(BaseRepository, ILedgerRepository):
    """
    Handles balance reads, standalone adjustments and ledger history.
    """

    def get_balance(self, user_id: int) -> int:
        """Committed balance in cents. Raises NotFoundError for unknown users."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT balance_cents FROM users WHERE user_id = ?", (user_id,))
            row = cursor.fetchone()
            if row is None:
                raise NotFoundError(f"User {user_id} not found.", code=error_codes.USER_NOT_FOUND)
            return row["balance_cents"]

    def adjust_balance(
        self,
        user_id: int,
        delta_cents: int,
        *,
        kind: str = EntryKind.ADJUSTMENT,
        note: str | None = None,
        actor_id: int | None = None,
    ) -> int:
        """
        Apply a delta as its own atomic unit.

        Returns:
            The new balance in cents
        """
        with self.atomic_transaction() as conn:
            new_balance = apply_balance_delta(
                conn.cursor(),
                user_id,
                delta_cents,
                kind,
                note=note,
                actor_id=actor_id,
                now=self.now(),
            )
        logger.info(f"Balance adjusted: user={user_id} delta={delta_cents} new={new_balance} kind={kind}")
        return new_balance

    def get_entries(self, user_id: int, limit: int = 50) -> list[dict]:
        """Most recent ledger entries for a user, newest first."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT entry_id, user_id, amount_cents, balance_after_cents, kind,
                       reference, note, actor_id, created_at
                FROM ledger_entries
                WHERE user_id = ?
                ORDER BY entry_id DESC
                LIMIT ?
                """,
                (user_id, limit),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_totals(self) -> dict[str, int]:
        """
        Snapshot of money held by the system, read in one transaction.

        Returns:
            Dict with balances, pending_stakes and pending_withdrawals in cents
        """
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COALESCE(SUM(balance_cents), 0) FROM users")
            balances = cursor.fetchone()[0]
            cursor.execute("SELECT COALESCE(SUM(stake_cents), 0) FROM bets WHERE status = 'pending'")
            pending_stakes = cursor.fetchone()[0]
            cursor.execute(
                """
                SELECT COALESCE(SUM(amount_cents), 0) FROM payments
                WHERE kind = 'withdrawal' AND status = 'pending'
                """
            )
            pending_withdrawals = cursor.fetchone()[0]
        return {
            "balances": balances,
            "pending_stakes": pending_stakes,
            "pending_withdrawals": pending_withdrawals,
        }
