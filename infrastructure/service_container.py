"""
Service container for dependency injection and initialization.

This module centralizes service creation and wiring for the HTTP front end
and for main.py.

Usage:
    container = ServiceContainer(ServiceConfig.from_env())
    await container.initialize()

    # Access services
    betting_service = container.betting_service
    settlement_service = container.settlement_service

    await container.shutdown()
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from database import Database
from repositories.bet_repository import BetRepository
from repositories.ledger_repository import LedgerRepository
from repositories.payment_repository import PaymentRepository
from repositories.race_repository import RaceRepository
from repositories.user_repository import UserRepository
from services.betting_service import BettingService
from services.ledger_service import LedgerService
from services.notification_service import (
    INotificationSink,
    LoggingNotificationSink,
    NotificationDispatcher,
    TelegramNotificationSink,
)
from services.payment_service import PaymentService
from services.permissions import AuthorizationService
from services.pricing_service import IPricingProvider, build_pricing_provider
from services.race_service import RaceService
from services.reconciliation_worker import ReconciliationWorker
from services.settlement_service import SettlementService
from services.user_service import UserService

logger = logging.getLogger("racebet.infrastructure.container")


@dataclass
class RepositoryContainer:
    """Container for all repositories."""

    user: UserRepository | None = None
    ledger: LedgerRepository | None = None
    race: RaceRepository | None = None
    bet: BetRepository | None = None
    payment: PaymentRepository | None = None


@dataclass
class ServiceConfig:
    """Configuration for service initialization."""

    # Database
    db_path: str = "racebet.db"
    lock_timeout_ms: int = 5000

    # Access
    admin_user_ids: list[int] = field(default_factory=list)

    # Money
    currency: str = "RUB"
    min_bet: Decimal = Decimal("50")
    min_deposit: Decimal = Decimal("100")
    min_withdrawal: Decimal = Decimal("500")

    # Pricing
    pricing_mode: str = "racer"
    pricing_version: int = 1
    fixed_prices: dict[int, Decimal] = field(
        default_factory=lambda: {1: Decimal("1.85"), 2: Decimal("2.10")}
    )
    outcome_probabilities: dict[int, Decimal] = field(
        default_factory=lambda: {1: Decimal("0.5"), 2: Decimal("0.5")}
    )
    pricing_margin: Decimal = Decimal("0")

    # Settlement
    settlement_mode: str = "batch"

    # Background workers
    telegram_bot_token: str | None = None
    notifications_enabled: bool = True
    notification_queue_size: int = 1000
    reconciliation_max_attempts: int = 3
    reconciliation_retry_delay_seconds: float = 1.0

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Build a config from the environment-backed settings in config.py."""
        import config

        return cls(
            db_path=config.DB_PATH,
            lock_timeout_ms=config.LOCK_TIMEOUT_MS,
            admin_user_ids=list(config.ADMIN_USER_IDS),
            currency=config.CURRENCY,
            min_bet=config.MIN_BET,
            min_deposit=config.MIN_DEPOSIT,
            min_withdrawal=config.MIN_WITHDRAWAL,
            pricing_mode=config.PRICING_MODE,
            pricing_version=config.PRICING_VERSION,
            fixed_prices=dict(config.FIXED_PRICES),
            outcome_probabilities=dict(config.OUTCOME_PROBABILITIES),
            pricing_margin=config.PRICING_MARGIN,
            settlement_mode=config.SETTLEMENT_MODE,
            telegram_bot_token=config.TELEGRAM_BOT_TOKEN,
            notifications_enabled=config.NOTIFICATIONS_ENABLED,
            notification_queue_size=config.NOTIFICATION_QUEUE_SIZE,
            reconciliation_max_attempts=config.RECONCILIATION_MAX_ATTEMPTS,
            reconciliation_retry_delay_seconds=config.RECONCILIATION_RETRY_DELAY_SECONDS,
        )


class ServiceContainer:
    """
    Central container for all application services.

    Handles proper initialization order and dependency injection.

    Example:
        container = ServiceContainer(config)
        await container.initialize()

        # Services are now available
        settlement_service = container.settlement_service
    """

    def __init__(self, config: ServiceConfig | None = None, sink: INotificationSink | None = None):
        """
        Initialize the container with configuration.

        Args:
            config: Service configuration (uses defaults if None)
            sink: Notification sink override (chosen from config if None)
        """
        self.config = config or ServiceConfig()
        self._sink = sink
        self._initialized = False
        self._workers_started = False
        self._repos = RepositoryContainer()
        self._database: Database | None = None

        self.pricing: IPricingProvider | None = None
        self.notifier: NotificationDispatcher | None = None
        self.reconciliation_worker: ReconciliationWorker | None = None
        self.authorization: AuthorizationService | None = None
        self.user_service: UserService | None = None
        self.ledger_service: LedgerService | None = None
        self.race_service: RaceService | None = None
        self.betting_service: BettingService | None = None
        self.settlement_service: SettlementService | None = None
        self.payment_service: PaymentService | None = None

    @property
    def is_initialized(self) -> bool:
        """Check if container has been initialized."""
        return self._initialized

    @property
    def repositories(self) -> RepositoryContainer:
        return self._repos

    async def initialize(self, start_workers: bool = True) -> None:
        """
        Initialize all services in correct order.

        This method is idempotent - calling it multiple times has no effect.

        Args:
            start_workers: Start the notification and reconciliation tasks
                on the running event loop
        """
        if self._initialized:
            logger.debug("ServiceContainer already initialized, skipping")
            return

        logger.info("Initializing ServiceContainer...")

        self._init_database()
        self._init_repositories()
        self._init_workers()
        self._init_services()

        self._initialized = True

        if start_workers:
            await self.start_workers()
        logger.info("ServiceContainer initialization complete")

    def _init_database(self) -> None:
        """Initialize database and run migrations."""
        logger.debug(f"Initializing database at {self.config.db_path}")
        self._database = Database(self.config.db_path)

    def _init_repositories(self) -> None:
        """Initialize all repositories."""
        logger.debug("Initializing repositories")

        db_path = self.config.db_path
        timeout = self.config.lock_timeout_ms
        self._repos.user = UserRepository(db_path, lock_timeout_ms=timeout)
        self._repos.ledger = LedgerRepository(db_path, lock_timeout_ms=timeout)
        self._repos.race = RaceRepository(db_path, lock_timeout_ms=timeout)
        self._repos.bet = BetRepository(db_path, lock_timeout_ms=timeout)
        self._repos.payment = PaymentRepository(db_path, lock_timeout_ms=timeout)

    def _build_sink(self) -> INotificationSink:
        if self._sink is not None:
            return self._sink
        if self.config.telegram_bot_token:
            return TelegramNotificationSink(bot_token=self.config.telegram_bot_token)
        logger.info("TELEGRAM_BOT_TOKEN not set; notifications will only be logged")
        return LoggingNotificationSink()

    def _init_workers(self) -> None:
        """Create the notification outbox."""
        self.notifier = NotificationDispatcher(
            self._build_sink(),
            maxsize=self.config.notification_queue_size,
            enabled=self.config.notifications_enabled,
        )

    def _init_services(self) -> None:
        """Initialize services in dependency order."""
        logger.debug("Initializing services")
        cfg = self.config
        repos = self._repos

        self.pricing = build_pricing_provider(cfg, repos.race)
        logger.info(f"Pricing mode: {cfg.pricing_mode} ({self.pricing.snapshot().version})")

        self.authorization = AuthorizationService(repos.user, admin_user_ids=cfg.admin_user_ids)
        self.user_service = UserService(repos.user)
        self.ledger_service = LedgerService(repos.ledger)
        self.race_service = RaceService(repos.race)
        self.betting_service = BettingService(
            repos.bet,
            repos.race,
            repos.user,
            self.pricing,
            min_bet=cfg.min_bet,
        )
        self.settlement_service = SettlementService(
            repos.bet,
            repos.race,
            notifier=self.notifier,
            mode=cfg.settlement_mode,
            currency=cfg.currency,
        )
        self.payment_service = PaymentService(
            repos.payment,
            notifier=self.notifier,
            min_deposit=cfg.min_deposit,
            min_withdrawal=cfg.min_withdrawal,
            currency=cfg.currency,
        )
        self.reconciliation_worker = ReconciliationWorker(
            self.payment_service,
            max_attempts=cfg.reconciliation_max_attempts,
            retry_delay_seconds=cfg.reconciliation_retry_delay_seconds,
        )

    async def start_workers(self) -> None:
        """Start background tasks. Requires a running event loop."""
        if self._workers_started:
            return
        await self.notifier.start()
        self.reconciliation_worker.start()
        self._workers_started = True

    async def shutdown(self) -> None:
        """Stop background tasks, delivering queued notifications first."""
        if self._workers_started:
            await self.reconciliation_worker.stop()
            await self.notifier.stop()
            self._workers_started = False
        logger.info("ServiceContainer shut down")
