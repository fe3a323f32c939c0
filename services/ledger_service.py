"""
Balance reads, admin adjustments and the ledger audit trail.
"""

import logging
from decimal import Decimal

from domain.exceptions import LedgerError, ValidationError
from domain.models.ledger_entry import EntryKind, LedgerEntry
from repositories.interfaces import ILedgerRepository
from services import error_codes
from services.interfaces import ILedgerService
from services.permissions import AdminContext
from services.result import Result
from utils.money import from_cents, to_cents

logger = logging.getLogger("racebet.services.ledger")


class LedgerService(ILedgerService):
    """
    Service layer over the balance of record.

    Balances are read from the committed row every time; nothing is cached.
    """

    def __init__(self, ledger_repo: ILedgerRepository):
        self.ledger_repo = ledger_repo

    def get_balance(self, user_id: int) -> Result[Decimal]:
        try:
            return Result.ok(from_cents(self.ledger_repo.get_balance(user_id)))
        except LedgerError as exc:
            return Result.from_error(exc)

    def adjust_balance(
        self,
        admin: AdminContext,
        user_id: int,
        amount,
        note: str | None = None,
    ) -> Result[Decimal]:
        """
        Credit (positive amount) or debit (negative amount) a balance outside
        the bet and payment flows.

        Debits still respect the non-negative floor.

        Returns:
            Result.ok(new balance) on success
            Result.fail(..., code) on validation, insufficient funds or store errors
        """
        try:
            try:
                delta_cents = to_cents(amount)
            except ValueError as exc:
                raise ValidationError(str(exc), code=error_codes.INVALID_AMOUNT) from exc
            if delta_cents == 0:
                raise ValidationError("Adjustment amount must be non-zero.", code=error_codes.INVALID_AMOUNT)

            new_balance = self.ledger_repo.adjust_balance(
                user_id,
                delta_cents,
                kind=EntryKind.ADJUSTMENT,
                note=note,
                actor_id=admin.user_id,
            )
        except LedgerError as exc:
            logger.info(f"Adjustment rejected for user {user_id} by admin {admin.user_id}: {exc}")
            return Result.from_error(exc)
        except Exception:
            logger.exception(f"Unexpected error adjusting balance of user {user_id}")
            return Result.fail("Internal error.", code=error_codes.INTERNAL_ERROR)

        logger.info(
            f"Admin {admin.user_id} adjusted user {user_id} by {from_cents(delta_cents)}"
            f" (note: {note or '-'})"
        )
        return Result.ok(from_cents(new_balance))

    def get_entries(self, user_id: int, limit: int = 50) -> Result[list[LedgerEntry]]:
        try:
            rows = self.ledger_repo.get_entries(user_id, limit=limit)
        except LedgerError as exc:
            return Result.from_error(exc)
        return Result.ok([LedgerEntry.from_row(row) for row in rows])

    def get_totals(self) -> Result[dict[str, Decimal]]:
        """
        Money currently held by the system.

        `balances + pending_stakes` only moves with deposits, withdrawals and
        admin adjustments.
        """
        try:
            totals = self.ledger_repo.get_totals()
        except LedgerError as exc:
            return Result.from_error(exc)
        return Result.ok({key: from_cents(value) for key, value in totals.items()})
