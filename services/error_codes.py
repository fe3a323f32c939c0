"""
Standard error codes for service layer.

These error codes allow the HTTP front end to programmatically handle
specific error conditions without parsing error message text.

Usage:
    from services.error_codes import NOT_FOUND, INSUFFICIENT_FUNDS
    from services.result import Result

    if user is None:
        return Result.fail("User not found", code=NOT_FOUND)

    if balance < amount:
        return Result.fail("Insufficient funds", code=INSUFFICIENT_FUNDS)
"""

# General errors
NOT_FOUND = "not_found"
VALIDATION_ERROR = "validation_error"
PERMISSION_DENIED = "permission_denied"
CONFLICT = "conflict"
INTERNAL_ERROR = "internal_error"

# Store errors
TRANSIENT_STORE_ERROR = "transient_store_error"

# User errors
USER_NOT_FOUND = "user_not_found"

# Betting errors
INVALID_STAKE = "invalid_stake"
INVALID_OUTCOME = "invalid_outcome"
INSUFFICIENT_FUNDS = "insufficient_funds"
BET_NOT_FOUND = "bet_not_found"
ALREADY_SETTLED = "already_settled"

# Race errors
RACE_NOT_FOUND = "race_not_found"
NO_OPEN_RACE = "no_open_race"
RACE_CLOSED = "race_closed"
WINNER_MISMATCH = "winner_mismatch"
SETTLEMENT_INCOMPLETE = "settlement_incomplete"

# Payment errors
INVALID_AMOUNT = "invalid_amount"
PAYMENT_NOT_FOUND = "payment_not_found"
DUPLICATE_PAYMENT = "duplicate_payment"
AMOUNT_MISMATCH = "amount_mismatch"

# Codes the caller may retry as-is
RETRYABLE_CODES = frozenset({TRANSIENT_STORE_ERROR})
