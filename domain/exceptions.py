"""
Ledger error taxonomy.

Repositories raise these; services translate them into Result failures
carrying the same stable code.
"""

from services import error_codes


class LedgerError(Exception):
    """Base class for expected ledger failures."""

    code = error_codes.INTERNAL_ERROR
    retryable = False

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class ValidationError(LedgerError, ValueError):
    """Bad input, rejected before any mutation."""

    code = error_codes.VALIDATION_ERROR


class InsufficientFundsError(LedgerError):
    """A debit would take a balance below zero."""

    code = error_codes.INSUFFICIENT_FUNDS

    def __init__(self, balance_cents: int, required_cents: int):
        self.balance_cents = balance_cents
        self.required_cents = required_cents
        super().__init__(
            f"Insufficient funds. Balance {balance_cents / 100:.2f}, "
            f"required {required_cents / 100:.2f}."
        )


class ConflictError(LedgerError):
    """The request conflicts with current state. Retry with fresh state."""

    code = error_codes.CONFLICT


class NotFoundError(ConflictError):
    code = error_codes.NOT_FOUND


class AlreadySettledError(ConflictError):
    """A bet, race or payment already reached a terminal state."""

    code = error_codes.ALREADY_SETTLED


class DuplicatePaymentError(ConflictError):
    code = error_codes.DUPLICATE_PAYMENT


class RaceClosedError(ConflictError):
    code = error_codes.RACE_CLOSED


class TransientStoreError(LedgerError):
    """
    Lock timeout or store failure.

    The unit of work either fully committed or fully rolled back, so the
    caller may retry.
    """

    code = error_codes.TRANSIENT_STORE_ERROR
    retryable = True
