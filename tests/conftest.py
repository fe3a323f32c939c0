"""
Pytest fixtures for tests.

Performance optimization: Uses a session-scoped schema template to avoid
running migrations for every test. Instead, we run migrations once and copy
the resulting database file.
"""

import shutil
from decimal import Decimal

import pytest

from database import Database
from repositories.bet_repository import BetRepository
from repositories.ledger_repository import LedgerRepository
from repositories.payment_repository import PaymentRepository
from repositories.race_repository import RaceRepository
from repositories.user_repository import UserRepository
from services.betting_service import BettingService
from services.ledger_service import LedgerService
from services.notification_service import INotificationSink, NotificationDispatcher
from services.payment_service import PaymentService
from services.permissions import AdminContext, AuthorizationService
from services.pricing_service import RacerOddsPricingProvider
from services.race_service import RaceService
from services.settlement_service import SettlementService
from services.user_service import UserService

# =============================================================================
# CENTRALIZED CONSTANTS
# =============================================================================

ADMIN_ID = 1000
"""Allowlisted admin used by service tests."""

ALICE_ID = 111
BOB_ID = 222


class RecordingSink(INotificationSink):
    """Sink that stores delivered messages for assertions."""

    def __init__(self):
        self.messages: list[tuple[int, str]] = []

    async def notify(self, user_id: int, text: str) -> None:
        self.messages.append((user_id, text))


class FailingSink(INotificationSink):
    """Sink that fails every delivery."""

    def __init__(self):
        self.attempts = 0

    async def notify(self, user_id: int, text: str) -> None:
        self.attempts += 1
        raise ConnectionError("messaging service unavailable")


@pytest.fixture(scope="session")
def _schema_template_path(tmp_path_factory):
    """
    Create a schema template database once per test session.

    Tests copy from this template instead of running schema initialization
    each time.
    """
    template_dir = tmp_path_factory.mktemp("schema_template")
    template_path = str(template_dir / "template.db")
    Database(template_path)
    yield template_path


@pytest.fixture
def repo_db_path(_schema_template_path, tmp_path):
    """Create a temporary database with initialized schema."""
    test_db_path = str(tmp_path / "test.db")
    shutil.copy2(_schema_template_path, test_db_path)
    yield test_db_path


@pytest.fixture
def user_repository(repo_db_path):
    return UserRepository(repo_db_path)


@pytest.fixture
def ledger_repository(repo_db_path):
    return LedgerRepository(repo_db_path)


@pytest.fixture
def race_repository(repo_db_path):
    return RaceRepository(repo_db_path)


@pytest.fixture
def bet_repository(repo_db_path):
    return BetRepository(repo_db_path)


@pytest.fixture
def payment_repository(repo_db_path):
    return PaymentRepository(repo_db_path)


@pytest.fixture
def admin():
    return AdminContext(user_id=ADMIN_ID, source="allowlist")


@pytest.fixture
def racers(race_repository):
    """Two active racers with the classic 1.85 / 2.10 odds. Returns (a_id, b_id)."""
    a = race_repository.add_racer("Racer A", Decimal("1.85"))
    b = race_repository.add_racer("Racer B", Decimal("2.10"))
    return a["racer_id"], b["racer_id"]


@pytest.fixture
def open_race(race_repository, racers):
    return race_repository.create_race("Race 1")


@pytest.fixture
def fund(user_repository, ledger_repository):
    """Register a user (if needed) and credit them. Returns the user id."""

    def _fund(user_id: int, amount_cents: int, username: str | None = None) -> int:
        user_repository.register(user_id, username or f"user{user_id}")
        if amount_cents:
            ledger_repository.adjust_balance(user_id, amount_cents, note="test funding")
        return user_id

    return _fund


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def dispatcher(recording_sink):
    return NotificationDispatcher(recording_sink, maxsize=100)


@pytest.fixture
def pricing(race_repository):
    return RacerOddsPricingProvider(race_repository)


@pytest.fixture
def betting_service(bet_repository, race_repository, user_repository, pricing):
    return BettingService(
        bet_repository,
        race_repository,
        user_repository,
        pricing,
        min_bet=Decimal("50"),
    )


@pytest.fixture
def settlement_service(bet_repository, race_repository, dispatcher):
    return SettlementService(
        bet_repository,
        race_repository,
        notifier=dispatcher,
        mode="batch",
        currency="RUB",
    )


@pytest.fixture
def per_bet_settlement_service(bet_repository, race_repository, dispatcher):
    return SettlementService(
        bet_repository,
        race_repository,
        notifier=dispatcher,
        mode="per_bet",
        currency="RUB",
    )


@pytest.fixture
def payment_service(payment_repository, dispatcher):
    return PaymentService(
        payment_repository,
        notifier=dispatcher,
        min_deposit=Decimal("100"),
        min_withdrawal=Decimal("500"),
        currency="RUB",
    )


@pytest.fixture
def ledger_service(ledger_repository):
    return LedgerService(ledger_repository)


@pytest.fixture
def user_service(user_repository):
    return UserService(user_repository)


@pytest.fixture
def race_service(race_repository):
    return RaceService(race_repository)


@pytest.fixture
def authorization(user_repository):
    return AuthorizationService(user_repository, admin_user_ids=[ADMIN_ID])
