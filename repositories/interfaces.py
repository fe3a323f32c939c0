"""
Abstract repository interfaces for data access.

These interfaces define the contracts implemented by concrete repositories.
"""

from abc import ABC, abstractmethod
from decimal import Decimal


class ILedgerRepository(ABC):
    @abstractmethod
    def get_balance(self, user_id: int) -> int: ...

    @abstractmethod
    def adjust_balance(
        self,
        user_id: int,
        delta_cents: int,
        *,
        kind: str = ...,
        note: str | None = None,
        actor_id: int | None = None,
    ) -> int: ...

    @abstractmethod
    def get_entries(self, user_id: int, limit: int = 50) -> list[dict]: ...

    @abstractmethod
    def get_totals(self) -> dict[str, int]: ...


class IUserRepository(ABC):
    @abstractmethod
    def register(self, user_id: int, username: str | None) -> dict: ...

    @abstractmethod
    def get_by_id(self, user_id: int) -> dict | None: ...

    @abstractmethod
    def exists(self, user_id: int) -> bool: ...

    @abstractmethod
    def get_all(self, limit: int = 100, offset: int = 0) -> list[dict]: ...

    @abstractmethod
    def count(self) -> int: ...

    @abstractmethod
    def set_admin(self, user_id: int, is_admin: bool) -> bool: ...

    @abstractmethod
    def is_admin(self, user_id: int) -> bool: ...


class IRaceRepository(ABC):
    @abstractmethod
    def add_racer(self, name: str, odds: Decimal, is_active: bool = True) -> dict: ...

    @abstractmethod
    def update_racer(
        self,
        racer_id: int,
        *,
        name: str | None = None,
        odds: Decimal | None = None,
        is_active: bool | None = None,
    ) -> dict: ...

    @abstractmethod
    def get_racer(self, racer_id: int) -> dict | None: ...

    @abstractmethod
    def get_racers(self, active_only: bool = False) -> list[dict]: ...

    @abstractmethod
    def get_odds_snapshot(self) -> tuple[int, dict[int, str]]: ...

    @abstractmethod
    def create_race(self, name: str) -> dict: ...

    @abstractmethod
    def close_race(self, race_id: int) -> dict: ...

    @abstractmethod
    def get_race(self, race_id: int) -> dict | None: ...

    @abstractmethod
    def get_current_race(self) -> dict | None: ...

    @abstractmethod
    def get_settleable_race(self) -> dict | None: ...

    @abstractmethod
    def get_races(self, status: str | None = None, limit: int = 20) -> list[dict]: ...


class IBetRepository(ABC):
    @abstractmethod
    def place_bet_atomic(
        self,
        *,
        user_id: int,
        race_id: int,
        racer_id: int,
        stake_cents: int,
        price: Decimal,
        pricing_version: str | None,
        bet_time: int,
    ) -> dict: ...

    @abstractmethod
    def get_bet(self, bet_id: int) -> dict | None: ...

    @abstractmethod
    def get_user_bets(self, user_id: int, limit: int = 50) -> list[dict]: ...

    @abstractmethod
    def get_pending_bets(self, race_id: int | None = None) -> list[dict]: ...

    @abstractmethod
    def cancel_bet_atomic(self, bet_id: int, actor_id: int | None = None) -> dict: ...

    @abstractmethod
    def settle_race_atomic(
        self,
        *,
        race_id: int,
        winning_racer_id: int,
        settled_at: int,
        actor_id: int | None = None,
    ) -> dict: ...

    @abstractmethod
    def begin_settlement(
        self, *, race_id: int, winning_racer_id: int, started_at: int
    ) -> tuple[dict, list[dict]]: ...

    @abstractmethod
    def settle_bet_atomic(
        self,
        bet: dict,
        *,
        winning_racer_id: int,
        settled_at: int,
        actor_id: int | None = None,
    ) -> dict | None: ...

    @abstractmethod
    def finish_settlement(self, race_id: int, settled_at: int) -> dict: ...

    @abstractmethod
    def get_stats(self, since_ts: int) -> dict: ...


class IPaymentRepository(ABC):
    @abstractmethod
    def create_deposit(
        self, user_id: int, amount_cents: int, external_ref: str
    ) -> tuple[dict, bool]: ...

    @abstractmethod
    def create_withdrawal_atomic(
        self,
        user_id: int,
        amount_cents: int,
        external_ref: str,
        details: dict | None = None,
    ) -> tuple[dict, bool]: ...

    @abstractmethod
    def complete_payment_atomic(self, external_ref: str) -> tuple[dict, bool]: ...

    @abstractmethod
    def reject_payment_atomic(
        self, external_ref: str, reason: str | None = None
    ) -> tuple[dict, bool]: ...

    @abstractmethod
    def get_by_reference(self, external_ref: str) -> dict | None: ...

    @abstractmethod
    def get_user_payments(self, user_id: int, limit: int = 50) -> list[dict]: ...

    @abstractmethod
    def get_pending(self, kind: str | None = None) -> list[dict]: ...
