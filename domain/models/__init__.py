"""
Domain models - pure data structures representing business entities.
"""

from domain.models.bet import Bet, BetStatus
from domain.models.ledger_entry import EntryKind, LedgerEntry
from domain.models.payment import Payment, PaymentKind, PaymentStatus
from domain.models.race import Race, RaceStatus, Racer
from domain.models.user import User

__all__ = [
    "Bet",
    "BetStatus",
    "EntryKind",
    "LedgerEntry",
    "Payment",
    "PaymentKind",
    "PaymentStatus",
    "Race",
    "RaceStatus",
    "Racer",
    "User",
]
