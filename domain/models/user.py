"""
User domain model.
"""

from dataclasses import dataclass
from decimal import Decimal

from utils.money import from_cents


@dataclass
class User:
    """
    A Telegram user with a balance of record.

    The balance is only ever changed through ledger operations.
    """

    user_id: int
    username: str | None
    balance: Decimal
    is_admin: bool = False
    created_at: int | None = None

    @classmethod
    def from_row(cls, row: dict) -> "User":
        return cls(
            user_id=row["user_id"],
            username=row.get("username"),
            balance=from_cents(row["balance_cents"]),
            is_admin=bool(row.get("is_admin", 0)),
            created_at=row.get("created_at"),
        )
