"""
Repository for managing betting data.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from domain.exceptions import (
    AlreadySettledError,
    ConflictError,
    NotFoundError,
    RaceClosedError,
)
from domain.models.bet import BetStatus
from domain.models.ledger_entry import EntryKind
from domain.models.race import RaceStatus
from repositories.base_repository import BaseRepository
from repositories.interfaces import IBetRepository
from repositories.ledger_repository import apply_balance_delta
from services import error_codes
from utils.money import payout_cents

logger = logging.getLogger("racebet.repositories.bet")

_BET_COLUMNS = (
    "bet_id, user_id, race_id, racer_id, stake_cents, price, pricing_version, "
    "status, payout_cents, created_at, settled_at"
)


class BetRepository(BaseRepository, IBetRepository):
    """
    Handles bet rows and every transaction that moves money because of a bet.
    """

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
    ) -> dict:
        """
        Atomically place a bet:
        - ensure the race still accepts bets
        - debit the stake (floor-checked)
        - insert the pending bet with the price quoted at request time

        Both writes commit together or not at all. BEGIN IMMEDIATE serializes
        concurrent placements so the second sees the first one's debit.

        Raises:
            NotFoundError: Unknown race or user
            RaceClosedError: The race no longer accepts bets
            InsufficientFundsError: Balance below stake
        """
        if stake_cents <= 0:
            raise ValueError("Stake must be positive.")

        with self.atomic_transaction() as conn:
            cursor = conn.cursor()

            cursor.execute("SELECT 1 FROM users WHERE user_id = ?", (user_id,))
            if cursor.fetchone() is None:
                raise NotFoundError(f"User {user_id} not found.", code=error_codes.USER_NOT_FOUND)

            cursor.execute("SELECT status FROM races WHERE race_id = ?", (race_id,))
            race = cursor.fetchone()
            if race is None:
                raise NotFoundError(f"Race {race_id} not found.", code=error_codes.RACE_NOT_FOUND)
            if race["status"] != RaceStatus.OPEN:
                raise RaceClosedError(f"Race {race_id} is {race['status']}; betting is closed.")

            cursor.execute(
                """
                INSERT INTO bets (user_id, race_id, racer_id, stake_cents, price, pricing_version,
                                  status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, race_id, racer_id, stake_cents, str(price), pricing_version,
                 BetStatus.PENDING, bet_time),
            )
            bet_id = cursor.lastrowid

            apply_balance_delta(
                cursor,
                user_id,
                -stake_cents,
                EntryKind.BET,
                reference=f"bet:{bet_id}",
                now=bet_time,
            )

            cursor.execute(f"SELECT {_BET_COLUMNS} FROM bets WHERE bet_id = ?", (bet_id,))
            return dict(cursor.fetchone())

    def get_bet(self, bet_id: int) -> dict | None:
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT {_BET_COLUMNS} FROM bets WHERE bet_id = ?", (bet_id,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def get_user_bets(self, user_id: int, limit: int = 50) -> list[dict]:
        """A user's bet history, newest first."""
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_BET_COLUMNS} FROM bets
                WHERE user_id = ?
                ORDER BY created_at DESC, bet_id DESC
                LIMIT ?
                """,
                (user_id, limit),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_pending_bets(self, race_id: int | None = None) -> list[dict]:
        """Pending bets, optionally for one race, joined with the owner's name."""
        query = """
            SELECT b.bet_id, b.user_id, b.race_id, b.racer_id, b.stake_cents, b.price,
                   b.pricing_version, b.status, b.payout_cents, b.created_at, b.settled_at,
                   u.username
            FROM bets b
            LEFT JOIN users u ON b.user_id = u.user_id
            WHERE b.status = ?
        """
        params: list = [BetStatus.PENDING]
        if race_id is not None:
            query += " AND b.race_id = ?"
            params.append(race_id)
        query += " ORDER BY b.bet_id"
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return [dict(row) for row in cursor.fetchall()]

    def cancel_bet_atomic(self, bet_id: int, actor_id: int | None = None) -> dict:
        """
        Refund a pending bet and mark it canceled.

        The status guard makes cancellation and settlement mutually exclusive:
        whichever commits first wins, the other sees a non-pending bet.

        Raises:
            NotFoundError: Unknown bet
            AlreadySettledError: The bet is no longer pending
        """
        now = self.now()
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE bets SET status = ?, settled_at = ? WHERE bet_id = ? AND status = ?",
                (BetStatus.CANCELED, now, bet_id, BetStatus.PENDING),
            )
            if cursor.rowcount == 0:
                cursor.execute("SELECT status FROM bets WHERE bet_id = ?", (bet_id,))
                row = cursor.fetchone()
                if row is None:
                    raise NotFoundError(f"Bet {bet_id} not found.", code=error_codes.BET_NOT_FOUND)
                raise AlreadySettledError(f"Bet {bet_id} is already {row['status']}.")

            cursor.execute(f"SELECT {_BET_COLUMNS} FROM bets WHERE bet_id = ?", (bet_id,))
            bet = dict(cursor.fetchone())
            apply_balance_delta(
                cursor,
                bet["user_id"],
                bet["stake_cents"],
                EntryKind.REFUND,
                reference=f"bet:{bet_id}",
                note="bet canceled",
                actor_id=actor_id,
                now=now,
            )
            return bet

    # --- Settlement ---

    def settle_race_atomic(
        self,
        *,
        race_id: int,
        winning_racer_id: int,
        settled_at: int,
        actor_id: int | None = None,
    ) -> dict:
        """
        Settle a whole race in one transaction:
        - claim the race (open/closed -> settled, recording the winner)
        - snapshot its pending bets
        - credit winners stake * stored price, mark every bet won or lost

        Any failure rolls back everything, including the claim, so the race
        can be settled again from scratch.

        Returns:
            Dict with race, winners and losers (lists of bet outcome dicts)

        Raises:
            NotFoundError: Unknown race
            AlreadySettledError: The race was already settled
            ConflictError: A per-bet settlement with another winner is in progress
        """
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            race = self._claim_race(cursor, race_id, winning_racer_id, RaceStatus.SETTLED, settled_at)

            cursor.execute(
                f"SELECT {_BET_COLUMNS} FROM bets WHERE race_id = ? AND status = ? ORDER BY bet_id",
                (race_id, BetStatus.PENDING),
            )
            rows = [dict(row) for row in cursor.fetchall()]

            distributions = self._calculate_payouts(rows, winning_racer_id)
            for entry in distributions["winners"]:
                apply_balance_delta(
                    cursor,
                    entry["user_id"],
                    entry["payout_cents"],
                    EntryKind.PAYOUT,
                    reference=f"bet:{entry['bet_id']}",
                    actor_id=actor_id,
                    now=settled_at,
                )

            cursor.executemany(
                """
                UPDATE bets SET status = ?, payout_cents = ?, settled_at = ?
                WHERE bet_id = ? AND status = ?
                """,
                [
                    (e["status"], e["payout_cents"], settled_at, e["bet_id"], BetStatus.PENDING)
                    for e in distributions["winners"] + distributions["losers"]
                ],
            )
            race["status"] = RaceStatus.SETTLED

        distributions["race"] = race
        return distributions

    def begin_settlement(
        self,
        *,
        race_id: int,
        winning_racer_id: int,
        started_at: int,
    ) -> tuple[dict, list[dict]]:
        """
        Claim a race for per-bet settlement and snapshot its pending bets.

        A race already in `settling` with the same winner is resumed: the
        snapshot then contains only the bets still pending.

        Returns:
            (race dict, pending bet rows)
        """
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            race = self._claim_race(
                cursor, race_id, winning_racer_id, RaceStatus.SETTLING, None, closed_at=started_at
            )
            cursor.execute(
                f"SELECT {_BET_COLUMNS} FROM bets WHERE race_id = ? AND status = ? ORDER BY bet_id",
                (race_id, BetStatus.PENDING),
            )
            rows = [dict(row) for row in cursor.fetchall()]
        return race, rows

    def settle_bet_atomic(
        self,
        bet: dict,
        *,
        winning_racer_id: int,
        settled_at: int,
        actor_id: int | None = None,
    ) -> dict | None:
        """
        Settle one bet from a settlement snapshot in its own transaction.

        Uses the price stored on the bet row. The status guard makes this a
        no-op (returns None) when the bet was already settled or canceled.
        """
        entry = self._bet_outcome(bet, winning_racer_id)
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE bets SET status = ?, payout_cents = ?, settled_at = ?
                WHERE bet_id = ? AND status = ?
                """,
                (entry["status"], entry["payout_cents"], settled_at, bet["bet_id"], BetStatus.PENDING),
            )
            if cursor.rowcount == 0:
                return None
            if entry["status"] == BetStatus.WON:
                apply_balance_delta(
                    cursor,
                    entry["user_id"],
                    entry["payout_cents"],
                    EntryKind.PAYOUT,
                    reference=f"bet:{bet['bet_id']}",
                    actor_id=actor_id,
                    now=settled_at,
                )
        return entry

    def finish_settlement(self, race_id: int, settled_at: int) -> dict:
        """
        Mark a settling race settled once none of its bets are pending.

        Raises:
            ConflictError: Bets are still pending (settlement incomplete)
        """
        with self.atomic_transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT COUNT(*) FROM bets WHERE race_id = ? AND status = ?",
                (race_id, BetStatus.PENDING),
            )
            remaining = cursor.fetchone()[0]
            if remaining:
                raise ConflictError(
                    f"Race {race_id} still has {remaining} pending bets.",
                    code=error_codes.SETTLEMENT_INCOMPLETE,
                )
            cursor.execute(
                "UPDATE races SET status = ?, settled_at = ? WHERE race_id = ? AND status = ?",
                (RaceStatus.SETTLED, settled_at, race_id, RaceStatus.SETTLING),
            )
            cursor.execute(
                """
                SELECT race_id, name, status, winning_racer_id, created_at, closed_at, settled_at
                FROM races WHERE race_id = ?
                """,
                (race_id,),
            )
            return dict(cursor.fetchone())

    def _claim_race(
        self,
        cursor,
        race_id: int,
        winning_racer_id: int,
        target_status: str,
        settled_at: int | None,
        closed_at: int | None = None,
    ) -> dict:
        """
        Transition a race into settlement, exactly once.

        open/closed -> target_status; settling with the same winner passes
        through (resume); anything else raises.
        """
        cursor.execute(
            """
            SELECT race_id, name, status, winning_racer_id, created_at, closed_at, settled_at
            FROM races WHERE race_id = ?
            """,
            (race_id,),
        )
        row = cursor.fetchone()
        if row is None:
            raise NotFoundError(f"Race {race_id} not found.", code=error_codes.RACE_NOT_FOUND)
        race = dict(row)

        if race["status"] == RaceStatus.SETTLED:
            raise AlreadySettledError(f"Race {race_id} is already settled.")
        if race["status"] == RaceStatus.SETTLING:
            if race["winning_racer_id"] != winning_racer_id:
                raise ConflictError(
                    f"Race {race_id} is being settled with winner {race['winning_racer_id']}.",
                    code=error_codes.WINNER_MISMATCH,
                )
            if target_status == RaceStatus.SETTLED:
                cursor.execute(
                    "UPDATE races SET status = ?, settled_at = ? WHERE race_id = ?",
                    (RaceStatus.SETTLED, settled_at, race_id),
                )
                race["settled_at"] = settled_at
            return race

        cursor.execute(
            """
            UPDATE races SET status = ?, winning_racer_id = ?, settled_at = ?,
                             closed_at = COALESCE(closed_at, ?)
            WHERE race_id = ? AND status IN (?, ?)
            """,
            (target_status, winning_racer_id, settled_at, closed_at or settled_at or self.now(), race_id,
             RaceStatus.OPEN, RaceStatus.CLOSED),
        )
        race.update(status=target_status, winning_racer_id=winning_racer_id, settled_at=settled_at)
        return race

    @staticmethod
    def _bet_outcome(bet: dict, winning_racer_id: int) -> dict:
        won = bet["racer_id"] == winning_racer_id
        return {
            "bet_id": bet["bet_id"],
            "user_id": bet["user_id"],
            "racer_id": bet["racer_id"],
            "stake_cents": bet["stake_cents"],
            "price": bet["price"],
            "status": BetStatus.WON if won else BetStatus.LOST,
            "payout_cents": payout_cents(bet["stake_cents"], bet["price"]) if won else 0,
        }

    def _calculate_payouts(self, rows: list[dict], winning_racer_id: int) -> dict[str, list[dict]]:
        """Split a snapshot into winners (with payouts) and losers."""
        distributions: dict[str, list[dict]] = {"winners": [], "losers": []}
        for bet in rows:
            entry = self._bet_outcome(bet, winning_racer_id)
            key = "winners" if entry["status"] == BetStatus.WON else "losers"
            distributions[key].append(entry)
        return distributions

    # --- Stats ---

    def get_stats(self, since_ts: int) -> dict:
        """
        Admin dashboard numbers.

        Returns:
            Dict with active_bets, total_volume_cents and bets_by_hour
            (list of {hour, bets} for bets created since since_ts)
        """
        with self.connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM bets WHERE status = ?", (BetStatus.PENDING,))
            active_bets = cursor.fetchone()[0]
            cursor.execute(
                "SELECT COALESCE(SUM(stake_cents), 0) FROM bets WHERE status != ?",
                (BetStatus.CANCELED,),
            )
            total_volume = cursor.fetchone()[0]
            cursor.execute(
                """
                SELECT CAST(strftime('%H', created_at, 'unixepoch') AS INTEGER) AS hour,
                       COUNT(*) AS bets
                FROM bets
                WHERE created_at > ?
                GROUP BY hour
                ORDER BY hour
                """,
                (since_ts,),
            )
            by_hour = [{"hour": row["hour"], "bets": row["bets"]} for row in cursor.fetchall()]
        return {
            "active_bets": active_bets,
            "total_volume_cents": total_volume,
            "bets_by_hour": by_hour,
        }
