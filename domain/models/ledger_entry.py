"""
Ledger entry domain model: one row per balance mutation.
"""

from dataclasses import dataclass
from decimal import Decimal

from utils.money import from_cents


class EntryKind:
    BET = "bet"
    PAYOUT = "payout"
    REFUND = "refund"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    WITHDRAWAL_REFUND = "withdrawal_refund"
    ADJUSTMENT = "adjustment"


@dataclass
class LedgerEntry:
    entry_id: int
    user_id: int
    amount: Decimal  # signed: credits positive, debits negative
    balance_after: Decimal
    kind: str
    created_at: int
    reference: str | None = None
    note: str | None = None
    actor_id: int | None = None

    @classmethod
    def from_row(cls, row: dict) -> "LedgerEntry":
        return cls(
            entry_id=row["entry_id"],
            user_id=row["user_id"],
            amount=from_cents(row["amount_cents"]),
            balance_after=from_cents(row["balance_after_cents"]),
            kind=row["kind"],
            created_at=row["created_at"],
            reference=row.get("reference"),
            note=row.get("note"),
            actor_id=row.get("actor_id"),
        )
