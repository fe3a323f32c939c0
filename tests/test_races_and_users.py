"""
Tests for racer configuration, race lifecycle and user management.
"""

from decimal import Decimal

import pytest

from domain.models.race import RaceStatus
from services import error_codes
from tests.conftest import ADMIN_ID, ALICE_ID, BOB_ID


class TestRacers:
    def test_add_and_list_racers(self, race_service, admin):
        a = race_service.add_racer(admin, "  Racer A ", "1.85").value
        b = race_service.add_racer(admin, "Racer B", Decimal("2.10"), is_active=False).value

        assert a.name == "Racer A"
        assert a.odds == Decimal("1.85")
        assert a.odds_revision == 1
        assert [r.racer_id for r in race_service.get_active_racers().value] == [a.racer_id]
        assert b.is_active is False

    @pytest.mark.parametrize("odds", ["0.99", "abc", -2])
    def test_invalid_odds(self, race_service, admin, odds):
        result = race_service.add_racer(admin, "Racer C", odds)
        assert result.error_code == error_codes.VALIDATION_ERROR

    def test_blank_name(self, race_service, admin):
        assert race_service.add_racer(admin, "   ", "2.00").error_code == error_codes.VALIDATION_ERROR

    def test_odds_change_bumps_revision(self, race_service, admin, racers):
        a_id, _ = racers

        renamed = race_service.update_racer(admin, a_id, name="Lightning").value
        repriced = race_service.update_racer(admin, a_id, odds="2.40").value
        same_odds = race_service.update_racer(admin, a_id, odds="2.40").value

        assert renamed.odds_revision == 1
        assert repriced.odds == Decimal("2.40")
        assert repriced.odds_revision == 2
        assert same_odds.odds_revision == 2

    def test_update_unknown_racer(self, race_service, admin):
        result = race_service.update_racer(admin, 404, odds="2.00")
        assert result.error_code == error_codes.INVALID_OUTCOME


class TestRaces:
    def test_open_race_becomes_current(self, race_service, admin):
        first = race_service.open_race(admin, "Heat 1").value
        second = race_service.open_race(admin, "Heat 2").value

        assert first.accepts_bets
        assert race_service.get_current_race().value.race_id == second.race_id

    def test_no_current_race(self, race_service):
        assert race_service.get_current_race().error_code == error_codes.NO_OPEN_RACE

    def test_close_race(self, race_service, admin, open_race):
        closed = race_service.close_race(admin, open_race["race_id"]).value

        assert closed.status == RaceStatus.CLOSED
        assert closed.closed_at is not None
        assert race_service.close_race(admin, open_race["race_id"]).error_code == error_codes.RACE_CLOSED

    def test_close_unknown_race(self, race_service, admin):
        assert race_service.close_race(admin, 99).error_code == error_codes.RACE_NOT_FOUND

    def test_get_unknown_race(self, race_service):
        assert race_service.get_race(99).error_code == error_codes.RACE_NOT_FOUND

    def test_list_races_by_status(self, race_service, admin):
        first = race_service.open_race(admin, "Heat 1").value
        race_service.open_race(admin, "Heat 2")
        race_service.close_race(admin, first.race_id)

        closed = race_service.list_races(status=RaceStatus.CLOSED).value

        assert [r.race_id for r in closed] == [first.race_id]
        assert len(race_service.list_races().value) == 2


class TestUsers:
    def test_register_is_idempotent(self, user_service):
        first = user_service.register_user(ALICE_ID, "alice").value
        again = user_service.register_user(ALICE_ID, None).value
        renamed = user_service.register_user(ALICE_ID, "alice_b").value

        assert first.user_id == ALICE_ID
        assert again.username == "alice"
        assert renamed.username == "alice_b"

    def test_registration_keeps_balance(self, fund, user_service, ledger_repository):
        fund(ALICE_ID, 5000)
        user_service.register_user(ALICE_ID, "alice")
        assert ledger_repository.get_balance(ALICE_ID) == 5000

    def test_get_unknown_user(self, user_service):
        assert user_service.get_user(ALICE_ID).error_code == error_codes.USER_NOT_FOUND

    def test_list_users(self, user_service, admin):
        user_service.register_user(ALICE_ID, "alice")
        user_service.register_user(BOB_ID, "bob")

        users = user_service.list_users(admin).value

        assert {u.user_id for u in users} == {ALICE_ID, BOB_ID}

    def test_grant_admin_role(self, user_service, admin, authorization):
        user_service.register_user(ALICE_ID, "alice")

        user = user_service.set_admin(admin, ALICE_ID, True).value

        assert user.is_admin
        assert authorization.is_admin(ALICE_ID)
        assert not user_service.set_admin(admin, ALICE_ID, False).value.is_admin

    def test_grant_admin_to_unknown_user(self, user_service, admin):
        result = user_service.set_admin(admin, ADMIN_ID, True)
        assert result.error_code == error_codes.USER_NOT_FOUND
