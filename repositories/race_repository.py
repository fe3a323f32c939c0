"""
Repository for racers (the outcome registry) and races.
"""

import logging
from decimal import Decimal

from domain.exceptions import ConflictError, NotFoundError
from domain.models.race import RaceStatus
from repositories.base_repository import BaseRepository
from repositories.interfaces import IRaceRepository
from services import error_codes

logger = logging.getLogger("racebet.repositories.race")

_RACER_COLUMNS = "racer_id, name, odds, is_active, odds_revision"
_RACE_COLUMNS = "race_id, name, status, winning_racer_id, created_at, closed_at, settled_at"


class RaceRepository(BaseRepository, IRaceRepository):
    """
    Handles racer configuration and race lifecycle rows.

    Settlement transitions (open -> settling -> settled) live in
    BetRepository because they must commit together with bet updates.
    """

    # --- Racers ---

    def add_racer(self, name: str, odds: Decimal, is_active: bool = True) -> dict:
        now = self.now()
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO racers (name, odds, is_active, odds_revision, created_at, updated_at)
                VALUES (?, ?, ?, 1, ?, ?)
                """,
                (name, str(odds), 1 if is_active else 0, now, now),
            )
            racer_id = cursor.lastrowid
            cursor.execute(f"SELECT {_RACER_COLUMNS} FROM racers WHERE racer_id = ?", (racer_id,))
            return dict(cursor.fetchone())

    def update_racer(
        self,
        racer_id: int,
        *,
        name: str | None = None,
        odds: Decimal | None = None,
        is_active: bool | None = None,
    ) -> dict:
        """
        Update a racer. Changing odds bumps odds_revision.

        Raises:
            NotFoundError: If the racer does not exist
        """
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT {_RACER_COLUMNS} FROM racers WHERE racer_id = ?", (racer_id,))
            row = cursor.fetchone()
            if row is None:
                raise NotFoundError(f"Racer {racer_id} not found.", code=error_codes.INVALID_OUTCOME)

            odds_changed = odds is not None and Decimal(row["odds"]) != odds
            cursor.execute(
                """
                UPDATE racers
                SET name = COALESCE(?, name),
                    odds = COALESCE(?, odds),
                    is_active = COALESCE(?, is_active),
                    odds_revision = odds_revision + ?,
                    updated_at = ?
                WHERE racer_id = ?
                """,
                (
                    name,
                    str(odds) if odds is not None else None,
                    None if is_active is None else (1 if is_active else 0),
                    1 if odds_changed else 0,
                    self.now(),
                    racer_id,
                ),
            )
            cursor.execute(f"SELECT {_RACER_COLUMNS} FROM racers WHERE racer_id = ?", (racer_id,))
            return dict(cursor.fetchone())

    def get_racer(self, racer_id: int) -> dict | None:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT {_RACER_COLUMNS} FROM racers WHERE racer_id = ?", (racer_id,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_racers(self, active_only: bool = False) -> list[dict]:
        query = f"SELECT {_RACER_COLUMNS} FROM racers"
        if active_only:
            query += " WHERE is_active = 1"
        query += " ORDER BY racer_id"
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query)
            return [dict(row) for row in cursor.fetchall()]

    def get_odds_snapshot(self) -> tuple[int, dict[int, str]]:
        """
        Active racer odds and a version read in one transaction.

        The version is the sum of odds revisions, which only ever grows.
        """
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COALESCE(SUM(odds_revision), 0) FROM racers")
            version = cursor.fetchone()[0]
            cursor.execute("SELECT racer_id, odds FROM racers WHERE is_active = 1")
            odds = {row["racer_id"]: row["odds"] for row in cursor.fetchall()}
        return version, odds

    # --- Races ---

    def create_race(self, name: str) -> dict:
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT INTO races (name, status, created_at) VALUES (?, ?, ?)",
                (name, RaceStatus.OPEN, self.now()),
            )
            race_id = cursor.lastrowid
            cursor.execute(f"SELECT {_RACE_COLUMNS} FROM races WHERE race_id = ?", (race_id,))
            race = dict(cursor.fetchone())
        logger.info(f"Race opened: {race_id} ({name})")
        return race

    def close_race(self, race_id: int) -> dict:
        """
        Stop accepting bets on an open race.

        Raises:
            NotFoundError: If the race does not exist
            ConflictError: If the race is not open
        """
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE races SET status = ?, closed_at = ? WHERE race_id = ? AND status = ?",
                (RaceStatus.CLOSED, self.now(), race_id, RaceStatus.OPEN),
            )
            cursor.execute(f"SELECT {_RACE_COLUMNS} FROM races WHERE race_id = ?", (race_id,))
            row = cursor.fetchone()
            if row is None:
                raise NotFoundError(f"Race {race_id} not found.", code=error_codes.RACE_NOT_FOUND)
            if row["status"] != RaceStatus.CLOSED:
                raise ConflictError(
                    f"Race {race_id} is {row['status']} and cannot be closed.",
                    code=error_codes.RACE_CLOSED,
                )
            return dict(row)

    def get_race(self, race_id: int) -> dict | None:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT {_RACE_COLUMNS} FROM races WHERE race_id = ?", (race_id,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_current_race(self) -> dict | None:
        """The most recently opened race that still accepts bets."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_RACE_COLUMNS} FROM races
                WHERE status = ?
                ORDER BY race_id DESC
                LIMIT 1
                """,
                (RaceStatus.OPEN,),
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_settleable_race(self) -> dict | None:
        """The most recent race whose bets still await a winner (open, closed or settling)."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_RACE_COLUMNS} FROM races
                WHERE status IN (?, ?, ?)
                ORDER BY race_id DESC
                LIMIT 1
                """,
                (RaceStatus.OPEN, RaceStatus.CLOSED, RaceStatus.SETTLING),
            )
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_races(self, status: str | None = None, limit: int = 20) -> list[dict]:
        with self.connection() as conn:
            cursor = conn.cursor()
            if status is None:
                cursor.execute(
                    f"SELECT {_RACE_COLUMNS} FROM races ORDER BY race_id DESC LIMIT ?",
                    (limit,),
                )
            else:
                cursor.execute(
                    f"SELECT {_RACE_COLUMNS} FROM races WHERE status = ? ORDER BY race_id DESC LIMIT ?",
                    (status, limit),
                )
            return [dict(row) for row in cursor.fetchall()]
