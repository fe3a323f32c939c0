"""
Payment reconciliation: deposits, withdrawals and gateway confirmations.

The gateway's payment reference is the idempotency key. Every transition is
applied at most once, however many times the gateway delivers it.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from config import CURRENCY, MIN_DEPOSIT, MIN_WITHDRAWAL
from domain.exceptions import LedgerError, ValidationError
from domain.models.payment import Payment, PaymentKind
from repositories.interfaces import IPaymentRepository
from services import error_codes
from services.interfaces import IPaymentService
from services.notification_service import NotificationDispatcher
from services.permissions import AdminContext
from services.result import Result
from utils.money import format_amount, from_cents, to_cents, to_decimal

logger = logging.getLogger("racebet.services.payment")

CONFIRM_STATUSES = frozenset({"succeeded", "completed", "paid"})
REJECT_STATUSES = frozenset({"canceled", "cancelled", "rejected", "failed"})
WAITING_STATUSES = frozenset({"pending", "waiting_for_capture"})


@dataclass(frozen=True)
class PaymentTransition:
    """A payment after a confirmation or rejection; applied is False for a re-delivery."""

    payment: Payment
    applied: bool


@dataclass(frozen=True)
class WebhookOutcome:
    reference: str
    action: str  # "confirm", "reject" or "ignore"
    applied: bool
    payment: Payment | None = None


class PaymentService(IPaymentService):
    """Creates payment requests and applies their external resolution."""

    def __init__(
        self,
        payment_repo: IPaymentRepository,
        notifier: NotificationDispatcher | None = None,
        min_deposit: Decimal | None = None,
        min_withdrawal: Decimal | None = None,
        currency: str | None = None,
    ):
        self.payment_repo = payment_repo
        self.notifier = notifier
        self.min_deposit_cents = to_cents(min_deposit if min_deposit is not None else MIN_DEPOSIT)
        self.min_withdrawal_cents = to_cents(min_withdrawal if min_withdrawal is not None else MIN_WITHDRAWAL)
        self.currency = currency or CURRENCY

    @staticmethod
    def _validate_amount(amount, minimum_cents: int, label: str) -> int:
        try:
            amount_cents = to_cents(amount)
        except ValueError as exc:
            raise ValidationError(str(exc), code=error_codes.INVALID_AMOUNT) from exc
        if amount_cents <= 0:
            raise ValidationError(f"{label} amount must be positive.", code=error_codes.INVALID_AMOUNT)
        if amount_cents < minimum_cents:
            raise ValidationError(
                f"Minimum {label.lower()} is {from_cents(minimum_cents)}.",
                code=error_codes.INVALID_AMOUNT,
            )
        return amount_cents

    @staticmethod
    def _validate_key(idempotency_key: str) -> str:
        key = str(idempotency_key or "").strip()
        if not key:
            raise ValidationError("A payment reference is required.")
        return key

    # --- Requests ---

    def record_deposit(self, user_id: int, amount, idempotency_key: str) -> Result[Payment]:
        """
        Record a pending deposit. The balance is credited only on confirmation.

        Repeating the call with the same key and parameters returns the same
        payment; the same key with different parameters is duplicate_payment.
        """
        try:
            amount_cents = self._validate_amount(amount, self.min_deposit_cents, "Deposit")
            key = self._validate_key(idempotency_key)
            row, created = self.payment_repo.create_deposit(user_id, amount_cents, key)
        except LedgerError as exc:
            logger.info(f"Deposit request rejected for user {user_id}: {exc}")
            return Result.from_error(exc)
        except Exception:
            logger.exception(f"Unexpected error recording deposit for user {user_id}")
            return Result.fail("Internal error.", code=error_codes.INTERNAL_ERROR)

        payment = Payment.from_row(row)
        if created:
            logger.info(f"Deposit requested: ref={key} user={user_id} amount={payment.amount}")
        return Result.ok(payment)

    def request_withdrawal(
        self,
        user_id: int,
        amount,
        idempotency_key: str,
        details: dict | None = None,
    ) -> Result[Payment]:
        """
        Reserve funds and record a pending withdrawal.

        The balance is debited now; a later rejection credits it back.
        """
        try:
            amount_cents = self._validate_amount(amount, self.min_withdrawal_cents, "Withdrawal")
            key = self._validate_key(idempotency_key)
            row, created = self.payment_repo.create_withdrawal_atomic(user_id, amount_cents, key, details)
        except LedgerError as exc:
            logger.info(f"Withdrawal request rejected for user {user_id}: {exc}")
            return Result.from_error(exc)
        except Exception:
            logger.exception(f"Unexpected error requesting withdrawal for user {user_id}")
            return Result.fail("Internal error.", code=error_codes.INTERNAL_ERROR)

        payment = Payment.from_row(row)
        if created:
            logger.info(f"Withdrawal requested: ref={key} user={user_id} amount={payment.amount}")
        return Result.ok(payment)

    # --- Resolution ---

    def apply_confirmed_payment(self, idempotency_key: str) -> Result[PaymentTransition]:
        """
        Apply a gateway confirmation exactly once.

        Deposits are credited and completed. Withdrawals are completed with no
        balance change. An already completed payment succeeds with
        applied=False; a rejected one fails with already_settled.
        """
        try:
            key = self._validate_key(idempotency_key)
            row, applied = self.payment_repo.complete_payment_atomic(key)
        except LedgerError as exc:
            logger.info(f"Confirmation for {idempotency_key} rejected: {exc}")
            return Result.from_error(exc)
        except Exception:
            logger.exception(f"Unexpected error confirming payment {idempotency_key}")
            return Result.fail("Internal error.", code=error_codes.INTERNAL_ERROR)

        payment = Payment.from_row(row)
        if applied:
            logger.info(f"Payment completed: ref={key} kind={payment.kind} amount={payment.amount}")
            if payment.kind == PaymentKind.DEPOSIT:
                self._publish(
                    payment.user_id,
                    f"Deposit of {format_amount(payment.amount, self.currency)} credited.",
                )
            else:
                self._publish(
                    payment.user_id,
                    f"Withdrawal of {format_amount(payment.amount, self.currency)} sent.",
                )
        else:
            logger.info(f"Duplicate confirmation ignored: ref={key}")
        return Result.ok(PaymentTransition(payment=payment, applied=applied))

    def reject_payment(self, idempotency_key: str, reason: str | None = None) -> Result[PaymentTransition]:
        """
        Reject a pending payment.

        Withdrawals get their reserved funds back. An already rejected payment
        succeeds with applied=False; a completed one fails with already_settled.
        """
        try:
            key = self._validate_key(idempotency_key)
            row, applied = self.payment_repo.reject_payment_atomic(key, reason)
        except LedgerError as exc:
            logger.info(f"Rejection for {idempotency_key} refused: {exc}")
            return Result.from_error(exc)
        except Exception:
            logger.exception(f"Unexpected error rejecting payment {idempotency_key}")
            return Result.fail("Internal error.", code=error_codes.INTERNAL_ERROR)

        payment = Payment.from_row(row)
        if applied:
            logger.info(f"Payment rejected: ref={key} kind={payment.kind} reason={reason or '-'}")
            if payment.kind == PaymentKind.WITHDRAWAL:
                self._publish(
                    payment.user_id,
                    f"Withdrawal of {format_amount(payment.amount, self.currency)} was rejected; "
                    f"funds returned to your balance.",
                )
        return Result.ok(PaymentTransition(payment=payment, applied=applied))

    def handle_webhook(self, payload: dict) -> Result[WebhookOutcome]:
        """
        Apply a gateway notification `{event, paymentReference, amount, status}`.

        Statuses succeeded/completed/paid confirm, canceled/rejected/failed
        reject, pending/waiting_for_capture are acknowledged without effect.
        When an amount is present it must match the recorded payment.
        """
        try:
            reference = self._validate_key(payload.get("paymentReference"))
            status = str(payload.get("status") or "").strip().lower()
            event = payload.get("event")

            if status in WAITING_STATUSES:
                logger.debug(f"Webhook {event} for {reference} is {status}; nothing to apply")
                return Result.ok(WebhookOutcome(reference=reference, action="ignore", applied=False))
            if status not in CONFIRM_STATUSES and status not in REJECT_STATUSES:
                raise ValidationError(f"Unsupported payment status {status!r}.")

            existing = self.payment_repo.get_by_reference(reference)
            if existing is not None and payload.get("amount") is not None:
                self._check_amount(payload["amount"], existing["amount_cents"], reference)
        except LedgerError as exc:
            logger.warning(f"Webhook rejected: {exc}")
            return Result.from_error(exc)
        except Exception:
            logger.exception("Unexpected error handling payment webhook")
            return Result.fail("Internal error.", code=error_codes.INTERNAL_ERROR)

        if status in CONFIRM_STATUSES:
            action = "confirm"
            result = self.apply_confirmed_payment(reference)
        else:
            action = "reject"
            result = self.reject_payment(reference, reason=f"gateway status {status}")
        if not result.success:
            return result
        transition = result.value
        return Result.ok(
            WebhookOutcome(
                reference=reference,
                action=action,
                applied=transition.applied,
                payment=transition.payment,
            )
        )

    @staticmethod
    def _check_amount(raw_amount, expected_cents: int, reference: str) -> None:
        try:
            amount = to_decimal(raw_amount)
        except ValueError as exc:
            raise ValidationError(str(exc), code=error_codes.AMOUNT_MISMATCH) from exc
        if amount != from_cents(expected_cents):
            raise ValidationError(
                f"Amount {amount} does not match payment {reference} ({from_cents(expected_cents)}).",
                code=error_codes.AMOUNT_MISMATCH,
            )

    # --- Reads ---

    def get_payment(self, idempotency_key: str) -> Result[Payment]:
        try:
            row = self.payment_repo.get_by_reference(idempotency_key)
        except LedgerError as exc:
            return Result.from_error(exc)
        if row is None:
            return Result.fail(
                f"Payment {idempotency_key} not found.", code=error_codes.PAYMENT_NOT_FOUND
            )
        return Result.ok(Payment.from_row(row))

    def get_user_payments(self, user_id: int, limit: int = 50) -> Result[list[Payment]]:
        try:
            rows = self.payment_repo.get_user_payments(user_id, limit=limit)
        except LedgerError as exc:
            return Result.from_error(exc)
        return Result.ok([Payment.from_row(row) for row in rows])

    def list_pending_withdrawals(self, admin: AdminContext) -> Result[list[Payment]]:
        try:
            rows = self.payment_repo.get_pending(kind=PaymentKind.WITHDRAWAL)
        except LedgerError as exc:
            return Result.from_error(exc)
        return Result.ok([Payment.from_row(row) for row in rows])

    def _publish(self, user_id: int, text: str) -> None:
        if self.notifier is not None:
            self.notifier.publish(user_id, text)
