"""
Handles betting-related business logic.
"""

import logging
import time
from decimal import Decimal

from config import MIN_BET
from domain.exceptions import ConflictError, LedgerError, ValidationError
from domain.models.bet import Bet
from repositories.interfaces import IBetRepository, IRaceRepository, IUserRepository
from services import error_codes
from services.interfaces import IBettingService
from services.permissions import AdminContext
from services.pricing_service import IPricingProvider, PricingSnapshot
from services.result import Result
from utils.money import from_cents, to_cents

logger = logging.getLogger("racebet.services.betting")

STATS_WINDOW_SECONDS = 24 * 60 * 60


class BettingService(IBettingService):
    """Encapsulates bet placement, bet history and the admin betting overview."""

    def __init__(
        self,
        bet_repo: IBetRepository,
        race_repo: IRaceRepository,
        user_repo: IUserRepository,
        pricing: IPricingProvider,
        min_bet: Decimal | None = None,
    ):
        self.bet_repo = bet_repo
        self.race_repo = race_repo
        self.user_repo = user_repo
        self.pricing = pricing
        self.min_bet_cents = to_cents(min_bet if min_bet is not None else MIN_BET)

    def _validate_stake(self, stake) -> int:
        try:
            stake_cents = to_cents(stake)
        except ValueError as exc:
            raise ValidationError(str(exc), code=error_codes.INVALID_STAKE) from exc
        if stake_cents < self.min_bet_cents:
            raise ValidationError(
                f"Minimum bet is {from_cents(self.min_bet_cents)}.",
                code=error_codes.INVALID_STAKE,
            )
        return stake_cents

    def _resolve_race_id(self, race_id: int | None) -> int:
        if race_id is not None:
            return race_id
        race = self.race_repo.get_current_race()
        if race is None:
            raise ConflictError("No race is open for betting.", code=error_codes.NO_OPEN_RACE)
        return race["race_id"]

    def _validate_outcome(self, outcome: int) -> None:
        racer = self.race_repo.get_racer(outcome)
        if racer is None or not racer["is_active"]:
            raise ValidationError(
                f"Outcome {outcome} is not available for betting.",
                code=error_codes.INVALID_OUTCOME,
            )

    def place_bet(
        self,
        user_id: int,
        outcome: int,
        stake,
        race_id: int | None = None,
        pricing: PricingSnapshot | None = None,
    ) -> Result[Bet]:
        """
        Place a fixed-odds bet on a racer.

        The stake is debited and the bet inserted in one transaction, at the
        price the pricing snapshot quotes for the outcome right now. Pass
        `pricing` to pin the snapshot the caller displayed to the user.

        Returns:
            Result.ok(Bet) on success
            Result.fail(..., code) with invalid_stake, invalid_outcome,
            no_open_race, race_closed, insufficient_funds or
            transient_store_error
        """
        try:
            stake_cents = self._validate_stake(stake)
            self._validate_outcome(outcome)
            snapshot = pricing or self.pricing.snapshot()
            price = snapshot.price_for(outcome)
            target_race = self._resolve_race_id(race_id)

            row = self.bet_repo.place_bet_atomic(
                user_id=user_id,
                race_id=target_race,
                racer_id=outcome,
                stake_cents=stake_cents,
                price=price,
                pricing_version=snapshot.version,
                bet_time=int(time.time()),
            )
        except LedgerError as exc:
            logger.info(f"Bet rejected for user {user_id} on outcome {outcome}: {exc}")
            return Result.from_error(exc)
        except Exception:
            logger.exception(f"Unexpected error placing bet for user {user_id}")
            return Result.fail("Internal error.", code=error_codes.INTERNAL_ERROR)

        bet = Bet.from_row(row)
        logger.info(
            f"Bet placed: id={bet.bet_id} user={user_id} race={bet.race_id} "
            f"racer={bet.racer_id} stake={bet.stake} price={bet.price} ({bet.pricing_version})"
        )
        return Result.ok(bet)

    def get_bet(self, bet_id: int) -> Result[Bet]:
        try:
            row = self.bet_repo.get_bet(bet_id)
        except LedgerError as exc:
            return Result.from_error(exc)
        if row is None:
            return Result.fail(f"Bet {bet_id} not found.", code=error_codes.BET_NOT_FOUND)
        return Result.ok(Bet.from_row(row))

    def get_bet_history(self, user_id: int, limit: int = 50) -> Result[list[Bet]]:
        try:
            rows = self.bet_repo.get_user_bets(user_id, limit=limit)
        except LedgerError as exc:
            return Result.from_error(exc)
        return Result.ok([Bet.from_row(row) for row in rows])

    def get_active_bets(self, admin: AdminContext, race_id: int | None = None) -> Result[list[dict]]:
        """Pending bets with owner names, for the admin overview."""
        try:
            rows = self.bet_repo.get_pending_bets(race_id)
        except LedgerError as exc:
            return Result.from_error(exc)
        active = []
        for row in rows:
            bet = Bet.from_row(row)
            active.append(
                {
                    "bet": bet,
                    "username": row.get("username"),
                    "potential_payout": bet.potential_payout,
                }
            )
        return Result.ok(active)

    def get_admin_stats(self, admin: AdminContext, now: int | None = None) -> Result[dict]:
        """
        Totals for the admin dashboard.

        Returns:
            Result.ok({total_users, active_bets, total_volume, bets_by_hour})
            where bets_by_hour covers the last 24 hours
        """
        now = now if now is not None else int(time.time())
        try:
            stats = self.bet_repo.get_stats(since_ts=now - STATS_WINDOW_SECONDS)
            total_users = self.user_repo.count()
        except LedgerError as exc:
            return Result.from_error(exc)
        return Result.ok(
            {
                "total_users": total_users,
                "active_bets": stats["active_bets"],
                "total_volume": from_cents(stats["total_volume_cents"]),
                "bets_by_hour": stats["bets_by_hour"],
            }
        )
