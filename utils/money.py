"""
Money helpers.

Balances and amounts are stored as integer minor units (cents) and exposed as
Decimal. Prices are stored as exact decimal strings with two places.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation

CENT = Decimal("0.01")
MIN_PRICE = Decimal("1.00")
MAX_CENTS = 10**15
"""Largest amount accepted from input (10 trillion), well inside SQLite INTEGER."""


def to_decimal(value) -> Decimal:
    """
    Coerce user input into a Decimal.

    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValueError("Amount must be a number.")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount


def to_cents(value) -> int:
    """
    Convert an amount to integer cents.

    Raises:
        ValueError: If the amount has more than two decimal places or exceeds
            MAX_CENTS in magnitude
    """
    amount = to_decimal(value)
    cents = amount * 100
    if abs(cents) > MAX_CENTS:
        raise ValueError(f"Amount {amount} is too large.")
    if cents != cents.to_integral_value():
        raise ValueError(f"Amount {amount} has more than two decimal places.")
    return int(cents)


def from_cents(cents: int) -> Decimal:
    """Convert integer cents back to a two-place Decimal."""
    return (Decimal(cents) / 100).quantize(CENT)


def normalize_price(value) -> Decimal:
    """
    Round a price down to two places and validate it is at least 1.00.

    Raises:
        ValueError: If the price is below 1.00
    """
    price = to_decimal(value).quantize(CENT, rounding=ROUND_DOWN)
    if price < MIN_PRICE:
        raise ValueError(f"Price {price} is below the minimum of {MIN_PRICE}.")
    return price


def payout_cents(stake_cents: int, price) -> int:
    """
    Winning payout for a stake at a price, in cents.

    Rounded down to the cent so the house never pays more than stake * price.
    """
    payout = Decimal(stake_cents) * Decimal(str(price))
    return int(payout.to_integral_value(rounding=ROUND_DOWN))


def format_amount(amount: Decimal, currency: str) -> str:
    """Render an amount for user-facing text, e.g. "370.00 RUB"."""
    return f"{amount.quantize(CENT)} {currency}"
