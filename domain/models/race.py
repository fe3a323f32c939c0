"""
Race and racer domain models.
"""

from dataclasses import dataclass
from decimal import Decimal


class RaceStatus:
    """
    Race lifecycle: open -> closed -> settling -> settled.

    Bets are accepted only while open. `settling` is the resumable state of a
    per-bet settlement that has not finished yet.
    """

    OPEN = "open"
    CLOSED = "closed"
    SETTLING = "settling"
    SETTLED = "settled"

    SETTLEABLE = frozenset({OPEN, CLOSED})


@dataclass
class Racer:
    """A selectable outcome with its currently configured odds."""

    racer_id: int
    name: str
    odds: Decimal
    is_active: bool = True
    odds_revision: int = 1

    @classmethod
    def from_row(cls, row: dict) -> "Racer":
        return cls(
            racer_id=row["racer_id"],
            name=row["name"],
            odds=Decimal(row["odds"]),
            is_active=bool(row["is_active"]),
            odds_revision=row["odds_revision"],
        )


@dataclass
class Race:
    race_id: int
    name: str
    status: str
    created_at: int
    winning_racer_id: int | None = None
    closed_at: int | None = None
    settled_at: int | None = None

    @property
    def accepts_bets(self) -> bool:
        return self.status == RaceStatus.OPEN

    @classmethod
    def from_row(cls, row: dict) -> "Race":
        return cls(
            race_id=row["race_id"],
            name=row["name"],
            status=row["status"],
            created_at=row["created_at"],
            winning_racer_id=row.get("winning_racer_id"),
            closed_at=row.get("closed_at"),
            settled_at=row.get("settled_at"),
        )
