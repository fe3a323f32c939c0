"""
Tests for bet placement, bet history and the admin betting overview.
"""

import sqlite3
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from domain.models.bet import BetStatus
from repositories.bet_repository import BetRepository
from services import error_codes
from services.betting_service import BettingService
from services.pricing_service import FixedPricingProvider
from tests.conftest import ALICE_ID, BOB_ID


class TestPlaceBet:
    """Tests for BettingService.place_bet."""

    def test_bet_debits_stake_and_records_price(self, fund, open_race, racers, betting_service, ledger_repository):
        a_id, _ = racers
        fund(ALICE_ID, 100000)

        result = betting_service.place_bet(ALICE_ID, a_id, 200)

        assert result.success, result.error
        bet = result.value
        assert bet.race_id == open_race["race_id"]
        assert bet.stake == Decimal("200.00")
        assert bet.price == Decimal("1.85")
        assert bet.status == BetStatus.PENDING
        assert bet.pricing_version is not None
        assert ledger_repository.get_balance(ALICE_ID) == 80000

    def test_stake_ledger_entry_references_bet(self, fund, open_race, racers, betting_service, ledger_repository):
        fund(ALICE_ID, 10000)
        bet = betting_service.place_bet(ALICE_ID, racers[1], "50.00").value

        entry = ledger_repository.get_entries(ALICE_ID)[0]
        assert entry["amount_cents"] == -5000
        assert entry["reference"] == f"bet:{bet.bet_id}"

    def test_explicit_race_id(self, fund, open_race, racers, betting_service):
        fund(ALICE_ID, 10000)
        result = betting_service.place_bet(ALICE_ID, racers[0], 50, race_id=open_race["race_id"])
        assert result.value.race_id == open_race["race_id"]

    @pytest.mark.parametrize("stake", [49, "49.99", 0, -100, "abc", "50.001", "1e30"])
    def test_invalid_stake(self, fund, open_race, racers, betting_service, ledger_repository, stake):
        fund(ALICE_ID, 100000)
        result = betting_service.place_bet(ALICE_ID, racers[0], stake)
        assert result.error_code == error_codes.INVALID_STAKE
        assert ledger_repository.get_balance(ALICE_ID) == 100000

    def test_minimum_stake_is_accepted(self, fund, open_race, racers, betting_service):
        fund(ALICE_ID, 5000)
        assert betting_service.place_bet(ALICE_ID, racers[0], 50).success

    def test_unknown_outcome(self, fund, open_race, racers, betting_service):
        fund(ALICE_ID, 100000)
        result = betting_service.place_bet(ALICE_ID, 9999, 100)
        assert result.error_code == error_codes.INVALID_OUTCOME

    def test_inactive_outcome(self, fund, open_race, racers, betting_service, race_repository):
        fund(ALICE_ID, 100000)
        race_repository.update_racer(racers[1], is_active=False)
        result = betting_service.place_bet(ALICE_ID, racers[1], 100)
        assert result.error_code == error_codes.INVALID_OUTCOME

    def test_no_open_race(self, fund, racers, betting_service):
        fund(ALICE_ID, 100000)
        result = betting_service.place_bet(ALICE_ID, racers[0], 100)
        assert result.error_code == error_codes.NO_OPEN_RACE

    def test_closed_race_rejects_bets(self, fund, open_race, racers, betting_service, race_service, admin,
                                      ledger_repository):
        fund(ALICE_ID, 100000)
        assert race_service.close_race(admin, open_race["race_id"]).success

        result = betting_service.place_bet(ALICE_ID, racers[0], 100, race_id=open_race["race_id"])

        assert result.error_code == error_codes.RACE_CLOSED
        assert ledger_repository.get_balance(ALICE_ID) == 100000

    def test_unknown_race(self, fund, racers, betting_service):
        fund(ALICE_ID, 100000)
        result = betting_service.place_bet(ALICE_ID, racers[0], 100, race_id=777)
        assert result.error_code == error_codes.RACE_NOT_FOUND

    def test_unregistered_user(self, open_race, racers, betting_service):
        result = betting_service.place_bet(31337, racers[0], 100)
        assert result.error_code == error_codes.USER_NOT_FOUND

    def test_insufficient_funds_changes_nothing(self, fund, open_race, racers, betting_service,
                                                bet_repository, ledger_repository):
        fund(ALICE_ID, 10000)

        result = betting_service.place_bet(ALICE_ID, racers[0], 150)

        assert result.error_code == error_codes.INSUFFICIENT_FUNDS
        assert ledger_repository.get_balance(ALICE_ID) == 10000
        assert bet_repository.get_user_bets(ALICE_ID) == []
        assert len(ledger_repository.get_entries(ALICE_ID)) == 1

    def test_stake_equal_to_balance(self, fund, open_race, racers, betting_service, ledger_repository):
        fund(ALICE_ID, 10000)
        assert betting_service.place_bet(ALICE_ID, racers[0], 100).success
        assert ledger_repository.get_balance(ALICE_ID) == 0


class TestPricingAtPlacement:
    def test_later_odds_change_does_not_touch_placed_bet(self, fund, open_race, racers, betting_service,
                                                         race_service, admin):
        a_id, _ = racers
        fund(ALICE_ID, 100000)
        placed = betting_service.place_bet(ALICE_ID, a_id, 100).value

        race_service.update_racer(admin, a_id, odds="3.00")
        later = betting_service.place_bet(ALICE_ID, a_id, 100).value

        assert betting_service.get_bet(placed.bet_id).value.price == Decimal("1.85")
        assert later.price == Decimal("3.00")
        assert later.pricing_version != placed.pricing_version

    def test_pinned_snapshot_price_is_used(self, fund, open_race, racers, betting_service):
        a_id, _ = racers
        fund(ALICE_ID, 100000)
        snapshot = FixedPricingProvider({a_id: Decimal("2.50")}, version="7").snapshot()

        bet = betting_service.place_bet(ALICE_ID, a_id, 100, pricing=snapshot).value

        assert bet.price == Decimal("2.50")
        assert bet.pricing_version == "fixed-v7"

    def test_pinned_snapshot_without_outcome(self, fund, open_race, racers, betting_service):
        a_id, b_id = racers
        fund(ALICE_ID, 100000)
        snapshot = FixedPricingProvider({a_id: Decimal("2.50")}).snapshot()
        result = betting_service.place_bet(ALICE_ID, b_id, 100, pricing=snapshot)
        assert result.error_code == error_codes.INVALID_OUTCOME


class TestConcurrentPlacement:
    def test_balance_never_goes_negative(self, fund, open_race, racers, betting_service, ledger_repository,
                                         bet_repository):
        """Five simultaneous 50.00 bets against a 100.00 balance: exactly two succeed."""
        fund(ALICE_ID, 10000)

        with ThreadPoolExecutor(max_workers=5) as pool:
            results = list(pool.map(lambda _: betting_service.place_bet(ALICE_ID, racers[0], 50), range(5)))

        succeeded = [r for r in results if r.success]
        rejected = [r for r in results if not r.success]
        assert len(succeeded) == 2
        assert {r.error_code for r in rejected} == {error_codes.INSUFFICIENT_FUNDS}
        assert ledger_repository.get_balance(ALICE_ID) == 0
        assert len(bet_repository.get_user_bets(ALICE_ID)) == 2

    def test_users_do_not_interfere(self, fund, open_race, racers, betting_service, ledger_repository):
        fund(ALICE_ID, 20000)
        fund(BOB_ID, 20000)

        def place(user_id):
            return betting_service.place_bet(user_id, racers[1], 100)

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(place, [ALICE_ID, BOB_ID, ALICE_ID, BOB_ID]))

        assert all(r.success for r in results)
        assert ledger_repository.get_balance(ALICE_ID) == 0
        assert ledger_repository.get_balance(BOB_ID) == 0


    def test_lock_wait_is_bounded_and_retryable(self, fund, open_race, racers, repo_db_path, race_repository,
                                                user_repository, pricing, ledger_repository):
        """A writer holding the lock past the timeout yields a retryable error and no mutation."""
        fund(ALICE_ID, 10000)
        service = BettingService(
            BetRepository(repo_db_path, lock_timeout_ms=200),
            race_repository,
            user_repository,
            pricing,
            min_bet=Decimal("50"),
        )
        blocker = sqlite3.connect(repo_db_path, isolation_level=None)
        try:
            blocker.execute("BEGIN IMMEDIATE")
            result = service.place_bet(ALICE_ID, racers[0], 50)
        finally:
            blocker.execute("ROLLBACK")
            blocker.close()

        assert result.error_code == error_codes.TRANSIENT_STORE_ERROR
        assert result.retryable
        assert ledger_repository.get_balance(ALICE_ID) == 10000
        assert service.bet_repo.get_user_bets(ALICE_ID) == []

        assert service.place_bet(ALICE_ID, racers[0], 50).success

class TestBetQueries:
    def test_history_newest_first(self, fund, open_race, racers, betting_service):
        fund(ALICE_ID, 100000)
        first = betting_service.place_bet(ALICE_ID, racers[0], 50).value
        second = betting_service.place_bet(ALICE_ID, racers[1], 60).value

        history = betting_service.get_bet_history(ALICE_ID).value

        assert [b.bet_id for b in history] == [second.bet_id, first.bet_id]

    def test_get_unknown_bet(self, betting_service):
        assert betting_service.get_bet(404).error_code == error_codes.BET_NOT_FOUND

    def test_active_bets_for_admin(self, fund, open_race, racers, betting_service, admin):
        fund(ALICE_ID, 100000, username="alice")
        betting_service.place_bet(ALICE_ID, racers[0], 200)

        active = betting_service.get_active_bets(admin).value

        assert len(active) == 1
        assert active[0]["username"] == "alice"
        assert active[0]["potential_payout"] == Decimal("370.00")

    def test_admin_stats(self, fund, open_race, racers, betting_service, settlement_service, admin):
        fund(ALICE_ID, 100000)
        fund(BOB_ID, 100000)
        betting_service.place_bet(ALICE_ID, racers[0], 200)
        bet = betting_service.place_bet(BOB_ID, racers[1], 100).value
        settlement_service.cancel_bet(admin, bet.bet_id)

        stats = betting_service.get_admin_stats(admin).value

        assert stats["total_users"] == 2
        assert stats["active_bets"] == 1
        assert stats["total_volume"] == Decimal("200.00")
        assert sum(row["bets"] for row in stats["bets_by_hour"]) == 2

    def test_admin_stats_window(self, fund, open_race, racers, betting_service, admin):
        fund(ALICE_ID, 100000)
        betting_service.place_bet(ALICE_ID, racers[0], 200)

        far_future = betting_service.get_admin_stats(admin, now=4_000_000_000).value

        assert far_future["bets_by_hour"] == []
        assert far_future["active_bets"] == 1
