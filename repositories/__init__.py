"""
Repository layer for data access abstraction.
"""

from repositories.base_repository import BaseRepository
from repositories.bet_repository import BetRepository
from repositories.interfaces import (
    IBetRepository,
    ILedgerRepository,
    IPaymentRepository,
    IRaceRepository,
    IUserRepository,
)
from repositories.ledger_repository import LedgerRepository
from repositories.payment_repository import PaymentRepository
from repositories.race_repository import RaceRepository
from repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "UserRepository",
    "LedgerRepository",
    "RaceRepository",
    "BetRepository",
    "PaymentRepository",
    "IUserRepository",
    "ILedgerRepository",
    "IRaceRepository",
    "IBetRepository",
    "IPaymentRepository",
]
