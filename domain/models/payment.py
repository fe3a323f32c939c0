"""
Payment domain model (deposit and withdrawal requests).
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal

from utils.money import from_cents


class PaymentKind:
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class PaymentStatus:
    """Payment lifecycle: pending -> completed | rejected."""

    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


@dataclass
class Payment:
    """
    A deposit or withdrawal keyed by the gateway's external reference.

    Deposits credit the balance when completed. Withdrawals debit at request
    time and credit back only if rejected.
    """

    payment_id: int
    user_id: int
    kind: str
    amount: Decimal
    external_ref: str
    status: str
    created_at: int
    resolved_at: int | None = None
    details: dict = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict) -> "Payment":
        raw_details = row.get("details")
        return cls(
            payment_id=row["payment_id"],
            user_id=row["user_id"],
            kind=row["kind"],
            amount=from_cents(row["amount_cents"]),
            external_ref=row["external_ref"],
            status=row["status"],
            created_at=row["created_at"],
            resolved_at=row.get("resolved_at"),
            details=json.loads(raw_details) if raw_details else {},
        )
