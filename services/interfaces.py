"""
Service layer interfaces (ABCs).

These abstract base classes define the contracts the HTTP front end relies on.
Every method returns a Result; none of them raises for expected failures.

Usage:
    class MyService(IMyService):
        def my_method(self, param: str) -> Result[dict]:
            ...
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from decimal import Decimal

    from domain.models.bet import Bet
    from domain.models.ledger_entry import LedgerEntry
    from domain.models.payment import Payment
    from domain.models.race import Race, Racer
    from domain.models.user import User
    from services.payment_service import PaymentTransition, WebhookOutcome
    from services.permissions import AdminContext
    from services.pricing_service import PricingSnapshot
    from services.result import Result
    from services.settlement_service import SettlementReport


class IUserService(ABC):
    """Interface for user registration and lookups."""

    @abstractmethod
    def register_user(self, user_id: int, username: str | None = None) -> "Result[User]":
        """Create the user on first interaction or refresh the display name."""
        ...

    @abstractmethod
    def get_user(self, user_id: int) -> "Result[User]": ...

    @abstractmethod
    def list_users(self, admin: "AdminContext", limit: int = 100, offset: int = 0) -> "Result[list[User]]": ...

    @abstractmethod
    def set_admin(self, admin: "AdminContext", user_id: int, is_admin: bool) -> "Result[User]": ...


class ILedgerService(ABC):
    """Interface for balances and the audit trail."""

    @abstractmethod
    def get_balance(self, user_id: int) -> "Result[Decimal]": ...

    @abstractmethod
    def adjust_balance(
        self, admin: "AdminContext", user_id: int, amount, note: str | None = None
    ) -> "Result[Decimal]":
        """Admin credit or debit outside the bet and payment flows."""
        ...

    @abstractmethod
    def get_entries(self, user_id: int, limit: int = 50) -> "Result[list[LedgerEntry]]": ...

    @abstractmethod
    def get_totals(self) -> "Result[dict[str, Decimal]]": ...


class IRaceService(ABC):
    """Interface for racers and races."""

    @abstractmethod
    def add_racer(self, admin: "AdminContext", name: str, odds, is_active: bool = True) -> "Result[Racer]": ...

    @abstractmethod
    def update_racer(
        self,
        admin: "AdminContext",
        racer_id: int,
        *,
        name: str | None = None,
        odds=None,
        is_active: bool | None = None,
    ) -> "Result[Racer]": ...

    @abstractmethod
    def get_active_racers(self) -> "Result[list[Racer]]": ...

    @abstractmethod
    def open_race(self, admin: "AdminContext", name: str) -> "Result[Race]": ...

    @abstractmethod
    def close_race(self, admin: "AdminContext", race_id: int) -> "Result[Race]": ...

    @abstractmethod
    def get_race(self, race_id: int) -> "Result[Race]": ...

    @abstractmethod
    def get_current_race(self) -> "Result[Race]": ...


class IBettingService(ABC):
    """Interface for bet placement and bet reads."""

    @abstractmethod
    def place_bet(
        self,
        user_id: int,
        outcome: int,
        stake,
        race_id: int | None = None,
        pricing: "PricingSnapshot | None" = None,
    ) -> "Result[Bet]":
        """Debit the stake and record a pending bet at the current price."""
        ...

    @abstractmethod
    def get_bet_history(self, user_id: int, limit: int = 50) -> "Result[list[Bet]]": ...

    @abstractmethod
    def get_active_bets(self, admin: "AdminContext", race_id: int | None = None) -> "Result[list[dict]]": ...

    @abstractmethod
    def get_admin_stats(self, admin: "AdminContext", now: int | None = None) -> "Result[dict]": ...


class ISettlementService(ABC):
    """Interface for winner declaration and bet cancellation."""

    @abstractmethod
    def settle_race(
        self, admin: "AdminContext", winning_racer_id: int, race_id: int | None = None
    ) -> "Result[SettlementReport]":
        """Resolve every pending bet of a race; a race is settled at most once."""
        ...

    @abstractmethod
    def cancel_bet(self, admin: "AdminContext", bet_id: int) -> "Result[Bet]": ...


class IPaymentService(ABC):
    """Interface for deposits, withdrawals and gateway confirmations."""

    @abstractmethod
    def record_deposit(self, user_id: int, amount, idempotency_key: str) -> "Result[Payment]": ...

    @abstractmethod
    def request_withdrawal(
        self, user_id: int, amount, idempotency_key: str, details: dict | None = None
    ) -> "Result[Payment]": ...

    @abstractmethod
    def apply_confirmed_payment(self, idempotency_key: str) -> "Result[PaymentTransition]":
        """Apply a confirmation exactly once; re-delivery succeeds without effect."""
        ...

    @abstractmethod
    def reject_payment(self, idempotency_key: str, reason: str | None = None) -> "Result[PaymentTransition]": ...

    @abstractmethod
    def handle_webhook(self, payload: dict) -> "Result[WebhookOutcome]": ...
