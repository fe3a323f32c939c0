"""
Settlement engine: resolves a race's pending bets against the declared winner.

Two modes are supported:

- batch: one transaction claims the race, credits every winner and marks
  every bet. Any failure rolls back the whole race, which can then be
  settled again from scratch.
- per_bet: one transaction claims the race (status `settling`, winner
  recorded) and snapshots its pending bets. Each bet then settles in its
  own transaction, guarded by `status = 'pending'`. A failure part way
  through leaves the race `settling`; settling again with the same winner
  resumes with only the bets that are still pending.

Payouts always use the price stored on the bet at placement.
"""

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal

from config import CURRENCY, SETTLEMENT_MODE
from domain.exceptions import ConflictError, LedgerError, ValidationError
from domain.models.bet import Bet, BetStatus
from domain.models.race import Race
from repositories.interfaces import IBetRepository, IRaceRepository
from services import error_codes
from services.interfaces import ISettlementService
from services.notification_service import NotificationDispatcher
from services.permissions import AdminContext
from services.result import Result
from utils.money import format_amount, from_cents

logger = logging.getLogger("racebet.services.settlement")


class SettlementMode:
    BATCH = "batch"
    PER_BET = "per_bet"

    ALL = (BATCH, PER_BET)


@dataclass(frozen=True)
class BetOutcome:
    bet_id: int
    user_id: int
    racer_id: int
    stake: Decimal
    price: Decimal
    status: str
    payout: Decimal

    @classmethod
    def from_entry(cls, entry: dict) -> "BetOutcome":
        return cls(
            bet_id=entry["bet_id"],
            user_id=entry["user_id"],
            racer_id=entry["racer_id"],
            stake=from_cents(entry["stake_cents"]),
            price=Decimal(entry["price"]),
            status=entry["status"],
            payout=from_cents(entry["payout_cents"]),
        )


@dataclass
class SettlementReport:
    race: Race
    winning_racer_id: int
    mode: str
    winners: list[BetOutcome] = field(default_factory=list)
    losers: list[BetOutcome] = field(default_factory=list)

    @property
    def total_staked(self) -> Decimal:
        return sum((o.stake for o in self.winners + self.losers), Decimal("0.00"))

    @property
    def total_paid(self) -> Decimal:
        return sum((o.payout for o in self.winners), Decimal("0.00"))


class SettlementService(ISettlementService):
    """Declares race winners and cancels bets on behalf of an admin."""

    def __init__(
        self,
        bet_repo: IBetRepository,
        race_repo: IRaceRepository,
        notifier: NotificationDispatcher | None = None,
        mode: str | None = None,
        currency: str | None = None,
    ):
        mode = mode or SETTLEMENT_MODE
        currency = currency or CURRENCY
        if mode not in SettlementMode.ALL:
            raise ValueError(f"Unknown settlement mode {mode!r}.")
        self.bet_repo = bet_repo
        self.race_repo = race_repo
        self.notifier = notifier
        self.mode = mode
        self.currency = currency

    # --- Settlement ---

    def settle_race(
        self,
        admin: AdminContext,
        winning_racer_id: int,
        race_id: int | None = None,
    ) -> Result[SettlementReport]:
        """
        Settle every pending bet of a race against the winning racer.

        With race_id None the latest race still awaiting a winner (open, closed
        or settling) is settled.

        Returns:
            Result.ok(SettlementReport) once the race is fully settled
            Result.fail with already_settled when it was settled before,
            winner_mismatch when a resumable settlement used another winner,
            settlement_incomplete when some bets could not be settled (rerun
            to resume), or transient_store_error
        """
        try:
            if self.race_repo.get_racer(winning_racer_id) is None:
                raise ValidationError(
                    f"Racer {winning_racer_id} does not exist.", code=error_codes.INVALID_OUTCOME
                )
            if race_id is None:
                current = self.race_repo.get_settleable_race()
                if current is None:
                    raise ConflictError("No race is awaiting settlement.", code=error_codes.NO_OPEN_RACE)
                race_id = current["race_id"]

            if self.mode == SettlementMode.BATCH:
                report = self._settle_batch(admin, race_id, winning_racer_id)
            else:
                report = self._settle_per_bet(admin, race_id, winning_racer_id)
        except LedgerError as exc:
            logger.info(f"Settlement of race {race_id} rejected: {exc}")
            return Result.from_error(exc)
        except Exception:
            logger.exception(f"Unexpected error settling race {race_id}")
            return Result.fail("Internal error.", code=error_codes.INTERNAL_ERROR)

        logger.info(
            f"Race {race_id} settled ({self.mode}) by admin {admin.user_id}: winner={winning_racer_id} "
            f"winners={len(report.winners)} losers={len(report.losers)} "
            f"staked={report.total_staked} paid={report.total_paid}"
        )
        return Result.ok(report)

    def _settle_batch(self, admin: AdminContext, race_id: int, winning_racer_id: int) -> SettlementReport:
        distributions = self.bet_repo.settle_race_atomic(
            race_id=race_id,
            winning_racer_id=winning_racer_id,
            settled_at=int(time.time()),
            actor_id=admin.user_id,
        )
        report = SettlementReport(
            race=Race.from_row(distributions["race"]),
            winning_racer_id=winning_racer_id,
            mode=SettlementMode.BATCH,
            winners=[BetOutcome.from_entry(e) for e in distributions["winners"]],
            losers=[BetOutcome.from_entry(e) for e in distributions["losers"]],
        )
        for outcome in report.winners + report.losers:
            self._notify_outcome(outcome, race_id)
        return report

    def _settle_per_bet(self, admin: AdminContext, race_id: int, winning_racer_id: int) -> SettlementReport:
        started_at = int(time.time())
        race, snapshot = self.bet_repo.begin_settlement(
            race_id=race_id,
            winning_racer_id=winning_racer_id,
            started_at=started_at,
        )
        logger.info(f"Race {race_id} settling: {len(snapshot)} pending bets in snapshot")

        report = SettlementReport(
            race=Race.from_row(race),
            winning_racer_id=winning_racer_id,
            mode=SettlementMode.PER_BET,
        )
        failed: list[int] = []
        for bet in snapshot:
            try:
                entry = self.bet_repo.settle_bet_atomic(
                    bet,
                    winning_racer_id=winning_racer_id,
                    settled_at=int(time.time()),
                    actor_id=admin.user_id,
                )
            except LedgerError as exc:
                logger.warning(f"Bet {bet['bet_id']} of race {race_id} not settled: {exc}")
                failed.append(bet["bet_id"])
                continue
            if entry is None:
                # Canceled or settled by a concurrent call after the snapshot
                continue
            outcome = BetOutcome.from_entry(entry)
            if outcome.status == BetStatus.WON:
                report.winners.append(outcome)
            else:
                report.losers.append(outcome)
            self._notify_outcome(outcome, race_id)

        if failed:
            raise ConflictError(
                f"Race {race_id} settlement incomplete: {len(failed)} bets failed "
                f"({', '.join(str(b) for b in failed)}). Settle again to resume.",
                code=error_codes.SETTLEMENT_INCOMPLETE,
            )

        report.race = Race.from_row(self.bet_repo.finish_settlement(race_id, int(time.time())))
        return report

    # --- Cancellation ---

    def cancel_bet(self, admin: AdminContext, bet_id: int) -> Result[Bet]:
        """
        Refund a pending bet's stake and mark it canceled.

        Returns:
            Result.ok(Bet) on success
            Result.fail with already_settled if the bet is no longer pending,
            bet_not_found for an unknown id
        """
        try:
            row = self.bet_repo.cancel_bet_atomic(bet_id, actor_id=admin.user_id)
        except LedgerError as exc:
            logger.info(f"Cancel of bet {bet_id} rejected: {exc}")
            return Result.from_error(exc)
        except Exception:
            logger.exception(f"Unexpected error canceling bet {bet_id}")
            return Result.fail("Internal error.", code=error_codes.INTERNAL_ERROR)

        bet = Bet.from_row(row)
        logger.info(f"Bet {bet_id} canceled by admin {admin.user_id}; refunded {bet.stake}")
        self._publish(
            bet.user_id,
            f"Your bet #{bet_id} was canceled. Stake {format_amount(bet.stake, self.currency)} refunded.",
        )
        return Result.ok(bet)

    # --- Notifications ---

    def _notify_outcome(self, outcome: BetOutcome, race_id: int) -> None:
        if outcome.status == BetStatus.WON:
            text = (
                f"Race #{race_id}: your bet #{outcome.bet_id} won! "
                f"Payout {format_amount(outcome.payout, self.currency)}."
            )
        else:
            text = f"Race #{race_id}: your bet #{outcome.bet_id} lost."
        self._publish(outcome.user_id, text)

    def _publish(self, user_id: int, text: str) -> None:
        if self.notifier is not None:
            self.notifier.publish(user_id, text)
