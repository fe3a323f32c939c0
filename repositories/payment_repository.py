"""
Repository for deposit and withdrawal requests.

Every transition keyed by an external reference is guarded by the current
status, so a gateway notification delivered twice applies at most once.
"""

import json
import logging

from domain.exceptions import AlreadySettledError, DuplicatePaymentError, NotFoundError
from domain.models.ledger_entry import EntryKind
from domain.models.payment import PaymentKind, PaymentStatus
from repositories.base_repository import BaseRepository
from repositories.interfaces import IPaymentRepository
from repositories.ledger_repository import apply_balance_delta
from services import error_codes

logger = logging.getLogger("racebet.repositories.payment")

_PAYMENT_COLUMNS = (
    "payment_id, user_id, kind, amount_cents, external_ref, status, details, created_at, resolved_at"
)


class PaymentRepository(BaseRepository, IPaymentRepository):
    """Data access for payments and the balance effects of their transitions."""

    def create_deposit(self, user_id: int, amount_cents: int, external_ref: str) -> tuple[dict, bool]:
        """
        Record a pending deposit. No balance effect.

        Repeating the call with identical parameters returns the existing row.

        Returns:
            (payment dict, created) where created is False for a repeat

        Raises:
            NotFoundError: Unknown user
            DuplicatePaymentError: The reference is already used differently
        """
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            existing = self._get_by_ref(cursor, external_ref)
            if existing is not None:
                self._ensure_same_request(existing, user_id, PaymentKind.DEPOSIT, amount_cents)
                return existing, False

            self._ensure_user(cursor, user_id)
            payment_id = self._insert(cursor, user_id, PaymentKind.DEPOSIT, amount_cents, external_ref, None)
            cursor.execute(f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE payment_id = ?", (payment_id,))
            return dict(cursor.fetchone()), True

    def create_withdrawal_atomic(
        self,
        user_id: int,
        amount_cents: int,
        external_ref: str,
        details: dict | None = None,
    ) -> tuple[dict, bool]:
        """
        Reserve funds and record a pending withdrawal in one transaction.

        Returns:
            (payment dict, created) where created is False for a repeat

        Raises:
            NotFoundError: Unknown user
            InsufficientFundsError: Balance below the amount
            DuplicatePaymentError: The reference is already used differently
        """
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            existing = self._get_by_ref(cursor, external_ref)
            if existing is not None:
                self._ensure_same_request(existing, user_id, PaymentKind.WITHDRAWAL, amount_cents)
                return existing, False

            self._ensure_user(cursor, user_id)
            payment_id = self._insert(
                cursor, user_id, PaymentKind.WITHDRAWAL, amount_cents, external_ref, details
            )
            apply_balance_delta(
                cursor,
                user_id,
                -amount_cents,
                EntryKind.WITHDRAWAL,
                reference=f"payment:{payment_id}",
                now=self.now(),
            )
            cursor.execute(f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE payment_id = ?", (payment_id,))
            return dict(cursor.fetchone()), True

    def complete_payment_atomic(self, external_ref: str) -> tuple[dict, bool]:
        """
        Mark a payment completed, crediting the balance for deposits.

        Withdrawals were debited at request time, so completing one moves no
        money. A payment that is already completed is returned unchanged.

        Returns:
            (payment dict, applied) where applied is False for a re-delivery

        Raises:
            NotFoundError: Unknown reference
            AlreadySettledError: The payment was rejected
        """
        now = self.now()
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            payment = self._require_by_ref(cursor, external_ref)
            if payment["status"] == PaymentStatus.COMPLETED:
                return payment, False
            if payment["status"] == PaymentStatus.REJECTED:
                raise AlreadySettledError(f"Payment {external_ref} was already rejected.")

            self._transition(cursor, payment, PaymentStatus.COMPLETED, now)
            if payment["kind"] == PaymentKind.DEPOSIT:
                apply_balance_delta(
                    cursor,
                    payment["user_id"],
                    payment["amount_cents"],
                    EntryKind.DEPOSIT,
                    reference=f"payment:{payment['payment_id']}",
                    now=now,
                )
            payment.update(status=PaymentStatus.COMPLETED, resolved_at=now)
            return payment, True

    def reject_payment_atomic(self, external_ref: str, reason: str | None = None) -> tuple[dict, bool]:
        """
        Mark a payment rejected, releasing reserved funds for withdrawals.

        Returns:
            (payment dict, applied) where applied is False for a re-delivery

        Raises:
            NotFoundError: Unknown reference
            AlreadySettledError: The payment was already completed
        """
        now = self.now()
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            payment = self._require_by_ref(cursor, external_ref)
            if payment["status"] == PaymentStatus.REJECTED:
                return payment, False
            if payment["status"] == PaymentStatus.COMPLETED:
                raise AlreadySettledError(f"Payment {external_ref} was already completed.")

            self._transition(cursor, payment, PaymentStatus.REJECTED, now)
            if payment["kind"] == PaymentKind.WITHDRAWAL:
                apply_balance_delta(
                    cursor,
                    payment["user_id"],
                    payment["amount_cents"],
                    EntryKind.WITHDRAWAL_REFUND,
                    reference=f"payment:{payment['payment_id']}",
                    note=reason,
                    now=now,
                )
            payment.update(status=PaymentStatus.REJECTED, resolved_at=now)
            return payment, True

    def get_by_reference(self, external_ref: str) -> dict | None:
        with self.connection() as conn:
            return self._get_by_ref(conn.cursor(), external_ref)

    def get_user_payments(self, user_id: int, limit: int = 50) -> list[dict]:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_PAYMENT_COLUMNS} FROM payments
                WHERE user_id = ?
                ORDER BY created_at DESC, payment_id DESC
                LIMIT ?
                """,
                (user_id, limit),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_pending(self, kind: str | None = None) -> list[dict]:
        """Pending payments, oldest first (admin review of withdrawals)."""
        query = f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE status = ?"
        params: list = [PaymentStatus.PENDING]
        if kind is not None:
            query += " AND kind = ?"
            params.append(kind)
        query += " ORDER BY payment_id"
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    # --- Helpers ---

    @staticmethod
    def _get_by_ref(cursor, external_ref: str) -> dict | None:
        cursor.execute(f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE external_ref = ?", (external_ref,))
        row = cursor.fetchone()
        return dict(row) if row else None

    def _require_by_ref(self, cursor, external_ref: str) -> dict:
        payment = self._get_by_ref(cursor, external_ref)
        if payment is None:
            raise NotFoundError(
                f"Payment {external_ref} not found.", code=error_codes.PAYMENT_NOT_FOUND
            )
        return payment

    @staticmethod
    def _ensure_user(cursor, user_id: int) -> None:
        cursor.execute("SELECT 1 FROM users WHERE user_id = ?", (user_id,))
        if cursor.fetchone() is None:
            raise NotFoundError(f"User {user_id} not found.", code=error_codes.USER_NOT_FOUND)

    @staticmethod
    def _ensure_same_request(existing: dict, user_id: int, kind: str, amount_cents: int) -> None:
        if (
            existing["user_id"] != user_id
            or existing["kind"] != kind
            or existing["amount_cents"] != amount_cents
        ):
            raise DuplicatePaymentError(
                f"Reference {existing['external_ref']} is already used by another payment."
            )

    def _insert(
        self,
        cursor,
        user_id: int,
        kind: str,
        amount_cents: int,
        external_ref: str,
        details: dict | None,
    ) -> int:
        cursor.execute(
            """
            INSERT INTO payments (user_id, kind, amount_cents, external_ref, status, details, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                kind,
                amount_cents,
                external_ref,
                PaymentStatus.PENDING,
                json.dumps(details) if details else None,
                self.now(),
            ),
        )
        return cursor.lastrowid

    @staticmethod
    def _transition(cursor, payment: dict, status: str, now: int) -> None:
        cursor.execute(
            "UPDATE payments SET status = ?, resolved_at = ? WHERE payment_id = ? AND status = ?",
            (status, now, payment["payment_id"], PaymentStatus.PENDING),
        )
        if cursor.rowcount == 0:
            # Unreachable under BEGIN IMMEDIATE; kept as a hard stop against double application
            raise AlreadySettledError(f"Payment {payment['external_ref']} changed concurrently.")
