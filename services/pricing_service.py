"""
Pricing providers: where the odds recorded on a bet come from.

A provider never holds mutable "current odds" state shared across requests.
Placement asks for a `PricingSnapshot` once, validates against it, and passes
the chosen price into the bet row, where it stays for the life of the bet.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

from domain.exceptions import ValidationError
from services import error_codes
from utils.money import MIN_PRICE, normalize_price, to_decimal

if TYPE_CHECKING:
    from infrastructure.service_container import ServiceConfig
    from repositories.interfaces import IRaceRepository

logger = logging.getLogger("racebet.services.pricing")

PRICING_MODES = ("racer", "fixed", "margin")


@dataclass(frozen=True)
class PricingSnapshot:
    """Prices for every outcome that can be bet on, read at one instant."""

    source: str
    version: str
    prices: Mapping[int, Decimal] = field(default_factory=dict)

    def price_for(self, outcome: int) -> Decimal:
        """
        Raises:
            ValidationError: If the outcome has no price in this snapshot
        """
        price = self.prices.get(outcome)
        if price is None:
            raise ValidationError(
                f"Outcome {outcome} is not available for betting.",
                code=error_codes.INVALID_OUTCOME,
            )
        return price


class IPricingProvider(ABC):
    """Interface for odds sources."""

    @abstractmethod
    def snapshot(self) -> PricingSnapshot: ...

    def current_price(self, outcome: int) -> Decimal:
        """Current price for one outcome (>= 1.00)."""
        return self.snapshot().price_for(outcome)


def _freeze(prices: dict[int, Decimal]) -> Mapping[int, Decimal]:
    return MappingProxyType(dict(prices))


def _floor_price(raw: Decimal) -> Decimal:
    """Round down to the cent, clamping anything below 1.00 up to 1.00."""
    try:
        return normalize_price(raw)
    except ValueError:
        return MIN_PRICE


class FixedPricingProvider(IPricingProvider):
    """Static per-outcome prices from configuration."""

    def __init__(self, prices: dict[int, Decimal], version: str = "1"):
        if not prices:
            raise ValueError("Fixed pricing needs at least one outcome.")
        self._snapshot = PricingSnapshot(
            source="fixed",
            version=f"fixed-v{version}",
            prices=_freeze({int(k): normalize_price(v) for k, v in prices.items()}),
        )

    def snapshot(self) -> PricingSnapshot:
        return self._snapshot


class MarginPricingProvider(IPricingProvider):
    """
    Prices derived from implied probabilities and a margin factor.

    For probabilities p_1..p_n:

        price_i = (p_1 + ... + p_n) / p_i * (1 + margin)

    rounded down to the cent and floored at 1.00.
    """

    def __init__(self, probabilities: dict[int, Decimal], margin=Decimal("0"), version: str = "1"):
        if not probabilities:
            raise ValueError("Margin pricing needs at least one outcome.")
        probs = {int(k): to_decimal(v) for k, v in probabilities.items()}
        if any(p <= 0 for p in probs.values()):
            raise ValueError("Outcome probabilities must be positive.")
        margin = to_decimal(margin)
        if margin <= -1:
            raise ValueError("Margin must be greater than -1.")

        total = sum(probs.values())
        prices = {
            outcome: _floor_price(total / p * (1 + margin))
            for outcome, p in probs.items()
        }
        self.margin = margin
        self._snapshot = PricingSnapshot(
            source="margin",
            version=f"margin-v{version}",
            prices=_freeze(prices),
        )

    def snapshot(self) -> PricingSnapshot:
        return self._snapshot


class RacerOddsPricingProvider(IPricingProvider):
    """
    Per-racer odds administered in the racers table.

    The snapshot version is the sum of odds revisions, so any odds change
    yields a new version label.
    """

    def __init__(self, race_repo: IRaceRepository):
        self.race_repo = race_repo

    def snapshot(self) -> PricingSnapshot:
        revision, odds = self.race_repo.get_odds_snapshot()
        prices = {}
        for racer_id, raw in odds.items():
            try:
                prices[racer_id] = normalize_price(raw)
            except ValueError:
                logger.warning(f"Racer {racer_id} has invalid odds {raw!r}; not offered")
        return PricingSnapshot(source="racer", version=f"racers-r{revision}", prices=_freeze(prices))


def build_pricing_provider(config: ServiceConfig, race_repo: IRaceRepository) -> IPricingProvider:
    """Choose the provider named by config.pricing_mode."""
    mode = config.pricing_mode
    if mode == "fixed":
        return FixedPricingProvider(config.fixed_prices, version=str(config.pricing_version))
    if mode == "margin":
        return MarginPricingProvider(
            config.outcome_probabilities,
            config.pricing_margin,
            version=str(config.pricing_version),
        )
    if mode == "racer":
        return RacerOddsPricingProvider(race_repo)
    raise ValueError(f"Unknown pricing mode {mode!r}. Expected one of {', '.join(PRICING_MODES)}.")
