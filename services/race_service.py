"""
Racer (outcome) configuration and race lifecycle.
"""

import logging
from decimal import Decimal

from domain.exceptions import LedgerError, ValidationError
from domain.models.race import Race, Racer
from repositories.interfaces import IRaceRepository
from services import error_codes
from services.interfaces import IRaceService
from services.permissions import AdminContext
from services.result import Result
from utils.money import normalize_price

logger = logging.getLogger("racebet.services.race")


def _validated_odds(odds) -> Decimal:
    try:
        return normalize_price(odds)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


class RaceService(IRaceService):
    """Admin-managed racers and races."""

    def __init__(self, race_repo: IRaceRepository):
        self.race_repo = race_repo

    # --- Racers ---

    def add_racer(self, admin: AdminContext, name: str, odds, is_active: bool = True) -> Result[Racer]:
        try:
            if not name or not name.strip():
                raise ValidationError("Racer name is required.")
            row = self.race_repo.add_racer(name.strip(), _validated_odds(odds), is_active)
        except LedgerError as exc:
            return Result.from_error(exc)
        logger.info(f"Admin {admin.user_id} added racer {row['racer_id']} ({row['name']}) at {row['odds']}")
        return Result.ok(Racer.from_row(row))

    def update_racer(
        self,
        admin: AdminContext,
        racer_id: int,
        *,
        name: str | None = None,
        odds=None,
        is_active: bool | None = None,
    ) -> Result[Racer]:
        """
        Change a racer's name, odds or availability.

        Bets already placed keep the odds they were placed at.
        """
        try:
            new_odds = _validated_odds(odds) if odds is not None else None
            row = self.race_repo.update_racer(racer_id, name=name, odds=new_odds, is_active=is_active)
        except LedgerError as exc:
            return Result.from_error(exc)
        logger.info(
            f"Admin {admin.user_id} updated racer {racer_id}: odds={row['odds']} "
            f"active={bool(row['is_active'])} revision={row['odds_revision']}"
        )
        return Result.ok(Racer.from_row(row))

    def get_active_racers(self) -> Result[list[Racer]]:
        try:
            rows = self.race_repo.get_racers(active_only=True)
        except LedgerError as exc:
            return Result.from_error(exc)
        return Result.ok([Racer.from_row(row) for row in rows])

    # --- Races ---

    def open_race(self, admin: AdminContext, name: str) -> Result[Race]:
        try:
            if not name or not name.strip():
                raise ValidationError("Race name is required.")
            row = self.race_repo.create_race(name.strip())
        except LedgerError as exc:
            return Result.from_error(exc)
        return Result.ok(Race.from_row(row))

    def close_race(self, admin: AdminContext, race_id: int) -> Result[Race]:
        """Stop accepting bets. Pending bets stay pending until settlement."""
        try:
            row = self.race_repo.close_race(race_id)
        except LedgerError as exc:
            return Result.from_error(exc)
        logger.info(f"Admin {admin.user_id} closed betting on race {race_id}")
        return Result.ok(Race.from_row(row))

    def get_race(self, race_id: int) -> Result[Race]:
        try:
            row = self.race_repo.get_race(race_id)
        except LedgerError as exc:
            return Result.from_error(exc)
        if row is None:
            return Result.fail(f"Race {race_id} not found.", code=error_codes.RACE_NOT_FOUND)
        return Result.ok(Race.from_row(row))

    def get_current_race(self) -> Result[Race]:
        try:
            row = self.race_repo.get_current_race()
        except LedgerError as exc:
            return Result.from_error(exc)
        if row is None:
            return Result.fail("No race is open for betting.", code=error_codes.NO_OPEN_RACE)
        return Result.ok(Race.from_row(row))

    def list_races(self, status: str | None = None, limit: int = 20) -> Result[list[Race]]:
        try:
            rows = self.race_repo.get_races(status=status, limit=limit)
        except LedgerError as exc:
            return Result.from_error(exc)
        return Result.ok([Race.from_row(row) for row in rows])
