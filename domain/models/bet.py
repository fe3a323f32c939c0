"""
Bet domain model.
"""

from dataclasses import dataclass
from decimal import Decimal

from utils.money import from_cents


class BetStatus:
    """Bet lifecycle: pending -> won | lost | canceled (all terminal)."""

    PENDING = "pending"
    WON = "won"
    LOST = "lost"
    CANCELED = "canceled"

    TERMINAL = frozenset({WON, LOST, CANCELED})


@dataclass
class Bet:
    """
    A fixed-odds bet on one racer in one race.

    `price` is captured at placement and never recomputed; settlement pays
    `stake * price` for a winning bet.
    """

    bet_id: int
    user_id: int
    race_id: int
    racer_id: int
    stake: Decimal
    price: Decimal
    status: str
    created_at: int
    pricing_version: str | None = None
    payout: Decimal | None = None
    settled_at: int | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == BetStatus.PENDING

    @property
    def potential_payout(self) -> Decimal:
        return (self.stake * self.price).quantize(Decimal("0.01"))

    @classmethod
    def from_row(cls, row: dict) -> "Bet":
        payout_cents = row.get("payout_cents")
        return cls(
            bet_id=row["bet_id"],
            user_id=row["user_id"],
            race_id=row["race_id"],
            racer_id=row["racer_id"],
            stake=from_cents(row["stake_cents"]),
            price=Decimal(row["price"]),
            status=row["status"],
            created_at=row["created_at"],
            pricing_version=row.get("pricing_version"),
            payout=from_cents(payout_cents) if payout_cents is not None else None,
            settled_at=row.get("settled_at"),
        )
