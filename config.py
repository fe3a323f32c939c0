"""
Centralized configuration for the race betting back end.
"""

from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation

from dotenv import load_dotenv

load_dotenv()


def _parse_int(env_var: str, default: int) -> int:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _parse_bool(env_var: str, default: bool) -> bool:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _parse_decimal(env_var: str, default: str) -> Decimal:
    raw = os.getenv(env_var)
    if raw is None:
        return Decimal(default)
    try:
        return Decimal(raw.strip())
    except InvalidOperation:
        return Decimal(default)


def _parse_int_list(env_var: str, default: list[int]) -> list[int]:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        return [int(x.strip()) for x in raw.split(",") if x.strip()]
    except ValueError:
        return default


def _decimal_map(raw: str) -> dict[int, Decimal]:
    """Parse "1:1.85,2:2.10" into {1: Decimal("1.85"), 2: Decimal("2.10")}."""
    parsed: dict[int, Decimal] = {}
    for pair in raw.split(","):
        if not pair.strip():
            continue
        key, value = pair.split(":", 1)
        parsed[int(key.strip())] = Decimal(value.strip())
    return parsed


def _parse_decimal_map(env_var: str, default: str) -> dict[int, Decimal]:
    raw = os.getenv(env_var)
    if raw is None:
        return _decimal_map(default)
    try:
        return _decimal_map(raw)
    except (ValueError, InvalidOperation):
        return _decimal_map(default)


DB_PATH = os.getenv("DB_PATH", "racebet.db")
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
ADMIN_USER_IDS: list[int] = _parse_int_list("ADMIN_USER_IDS", [])
CURRENCY = os.getenv("CURRENCY", "RUB")

# Limits (major currency units)
MIN_BET = _parse_decimal("MIN_BET", "50")
MIN_DEPOSIT = _parse_decimal("MIN_DEPOSIT", "100")
MIN_WITHDRAWAL = _parse_decimal("MIN_WITHDRAWAL", "500")

# Bounded wait for the database write lock before surfacing a retryable error
LOCK_TIMEOUT_MS = _parse_int("LOCK_TIMEOUT_MS", 5000)

# Pricing: "racer" (per-racer odds column), "fixed" (FIXED_PRICES) or "margin"
PRICING_MODE = os.getenv("PRICING_MODE", "racer").lower()
PRICING_VERSION = _parse_int("PRICING_VERSION", 1)
FIXED_PRICES = _parse_decimal_map("FIXED_PRICES", "1:1.85,2:2.10")
OUTCOME_PROBABILITIES = _parse_decimal_map("OUTCOME_PROBABILITIES", "1:0.5,2:0.5")
PRICING_MARGIN = _parse_decimal("PRICING_MARGIN", "0")

# Settlement: "batch" (one transaction per race) or "per_bet" (resumable)
SETTLEMENT_MODE = os.getenv("SETTLEMENT_MODE", "batch").lower()

# Background workers
NOTIFICATIONS_ENABLED = _parse_bool("NOTIFICATIONS_ENABLED", True)
NOTIFICATION_QUEUE_SIZE = _parse_int("NOTIFICATION_QUEUE_SIZE", 1000)
RECONCILIATION_MAX_ATTEMPTS = _parse_int("RECONCILIATION_MAX_ATTEMPTS", 3)
RECONCILIATION_RETRY_DELAY_SECONDS = _parse_int("RECONCILIATION_RETRY_DELAY_SECONDS", 1)
