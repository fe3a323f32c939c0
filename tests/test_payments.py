"""
Tests for deposits, withdrawals and gateway webhook reconciliation.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from domain.models.ledger_entry import EntryKind
from domain.models.payment import PaymentKind, PaymentStatus
from services import error_codes
from tests.conftest import ALICE_ID, BOB_ID


class TestDeposits:
    def test_deposit_credits_only_on_confirmation(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 0)

        payment = payment_service.record_deposit(ALICE_ID, 500, "pay-1").value

        assert payment.status == PaymentStatus.PENDING
        assert payment.kind == PaymentKind.DEPOSIT
        assert ledger_repository.get_balance(ALICE_ID) == 0

        transition = payment_service.apply_confirmed_payment("pay-1").value

        assert transition.applied is True
        assert transition.payment.status == PaymentStatus.COMPLETED
        assert ledger_repository.get_balance(ALICE_ID) == 50000

    def test_confirmation_applies_once(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 0)
        payment_service.record_deposit(ALICE_ID, 500, "pay_123")

        first = payment_service.apply_confirmed_payment("pay_123")
        second = payment_service.apply_confirmed_payment("pay_123")

        assert first.value.applied is True
        assert second.success
        assert second.value.applied is False
        assert ledger_repository.get_balance(ALICE_ID) == 50000
        deposits = [e for e in ledger_repository.get_entries(ALICE_ID) if e["kind"] == EntryKind.DEPOSIT]
        assert len(deposits) == 1

    def test_concurrent_confirmations_credit_once(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 0)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda _: payment_service.apply_confirmed_payment("pay-1"), range(4)))

        assert all(r.success for r in results)
        assert sum(1 for r in results if r.value.applied) == 1
        assert ledger_repository.get_balance(ALICE_ID) == 50000

    def test_repeated_request_returns_same_payment(self, fund, payment_service):
        fund(ALICE_ID, 0)
        first = payment_service.record_deposit(ALICE_ID, 500, "pay-1").value
        again = payment_service.record_deposit(ALICE_ID, "500.00", "pay-1").value
        assert again.payment_id == first.payment_id

    @pytest.mark.parametrize(
        "user_id, amount",
        [(ALICE_ID, 600), (BOB_ID, 500)],
    )
    def test_reference_reused_with_other_parameters(self, fund, payment_service, user_id, amount):
        fund(ALICE_ID, 0)
        fund(BOB_ID, 0)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")

        result = payment_service.record_deposit(user_id, amount, "pay-1")

        assert result.error_code == error_codes.DUPLICATE_PAYMENT

    def test_reference_reused_across_kinds(self, fund, payment_service):
        fund(ALICE_ID, 100000)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")
        result = payment_service.request_withdrawal(ALICE_ID, 500, "pay-1")
        assert result.error_code == error_codes.DUPLICATE_PAYMENT

    @pytest.mark.parametrize("amount", [99, "99.99", 0, -5, "ten", "1e30"])
    def test_invalid_deposit_amount(self, fund, payment_service, amount):
        fund(ALICE_ID, 0)
        result = payment_service.record_deposit(ALICE_ID, amount, "pay-1")
        assert result.error_code == error_codes.INVALID_AMOUNT

    def test_missing_reference(self, fund, payment_service):
        fund(ALICE_ID, 0)
        result = payment_service.record_deposit(ALICE_ID, 500, "  ")
        assert result.error_code == error_codes.VALIDATION_ERROR

    def test_unknown_user(self, payment_service):
        result = payment_service.record_deposit(31337, 500, "pay-1")
        assert result.error_code == error_codes.USER_NOT_FOUND

    def test_confirm_unknown_reference(self, payment_service):
        result = payment_service.apply_confirmed_payment("missing")
        assert result.error_code == error_codes.PAYMENT_NOT_FOUND

    def test_rejected_deposit_never_credits(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 0)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")

        assert payment_service.reject_payment("pay-1", reason="card declined").value.applied
        confirm = payment_service.apply_confirmed_payment("pay-1")

        assert confirm.error_code == error_codes.ALREADY_SETTLED
        assert ledger_repository.get_balance(ALICE_ID) == 0


class TestWithdrawals:
    def test_withdrawal_reserves_funds(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 100000)

        payment = payment_service.request_withdrawal(
            ALICE_ID, 600, "wd-1", details={"card": "**** 4242"}
        ).value

        assert payment.status == PaymentStatus.PENDING
        assert payment.details == {"card": "**** 4242"}
        assert ledger_repository.get_balance(ALICE_ID) == 40000

    def test_completed_withdrawal_moves_no_more_money(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 100000)
        payment_service.request_withdrawal(ALICE_ID, 600, "wd-1")

        transition = payment_service.apply_confirmed_payment("wd-1").value

        assert transition.applied
        assert transition.payment.status == PaymentStatus.COMPLETED
        assert ledger_repository.get_balance(ALICE_ID) == 40000

    def test_rejected_withdrawal_refunds_once(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 100000)
        payment_service.request_withdrawal(ALICE_ID, 600, "wd-1")

        first = payment_service.reject_payment("wd-1", reason="invalid card")
        second = payment_service.reject_payment("wd-1", reason="invalid card")

        assert first.value.applied is True
        assert second.value.applied is False
        assert ledger_repository.get_balance(ALICE_ID) == 100000
        refund = ledger_repository.get_entries(ALICE_ID)[0]
        assert refund["kind"] == EntryKind.WITHDRAWAL_REFUND
        assert refund["note"] == "invalid card"

    def test_completed_withdrawal_cannot_be_rejected(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 100000)
        payment_service.request_withdrawal(ALICE_ID, 600, "wd-1")
        payment_service.apply_confirmed_payment("wd-1")

        result = payment_service.reject_payment("wd-1")

        assert result.error_code == error_codes.ALREADY_SETTLED
        assert ledger_repository.get_balance(ALICE_ID) == 40000

    def test_insufficient_funds(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 50000)

        result = payment_service.request_withdrawal(ALICE_ID, 600, "wd-1")

        assert result.error_code == error_codes.INSUFFICIENT_FUNDS
        assert ledger_repository.get_balance(ALICE_ID) == 50000
        assert payment_service.get_payment("wd-1").error_code == error_codes.PAYMENT_NOT_FOUND

    def test_below_minimum(self, fund, payment_service):
        fund(ALICE_ID, 100000)
        result = payment_service.request_withdrawal(ALICE_ID, "499.99", "wd-1")
        assert result.error_code == error_codes.INVALID_AMOUNT

    def test_oversized_withdrawal(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 100000)
        result = payment_service.request_withdrawal(ALICE_ID, "1e30", "wd-1")
        assert result.error_code == error_codes.INVALID_AMOUNT
        assert ledger_repository.get_balance(ALICE_ID) == 100000

    def test_repeated_request_reserves_once(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 100000)
        first = payment_service.request_withdrawal(ALICE_ID, 600, "wd-1").value
        again = payment_service.request_withdrawal(ALICE_ID, 600, "wd-1").value
        assert again.payment_id == first.payment_id
        assert ledger_repository.get_balance(ALICE_ID) == 40000

    def test_pending_withdrawals_for_admin(self, fund, payment_service, admin):
        fund(ALICE_ID, 200000)
        payment_service.request_withdrawal(ALICE_ID, 600, "wd-1")
        payment_service.request_withdrawal(ALICE_ID, 700, "wd-2")
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")
        payment_service.apply_confirmed_payment("wd-2")

        pending = payment_service.list_pending_withdrawals(admin).value

        assert [p.external_ref for p in pending] == ["wd-1"]

    def test_user_payment_history(self, fund, payment_service):
        fund(ALICE_ID, 200000)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")
        payment_service.request_withdrawal(ALICE_ID, 600, "wd-1")

        history = payment_service.get_user_payments(ALICE_ID).value

        assert {p.external_ref for p in history} == {"pay-1", "wd-1"}


class TestWebhooks:
    def _payload(self, reference, status, amount=None):
        payload = {"event": "payment.updated", "paymentReference": reference, "status": status}
        if amount is not None:
            payload["amount"] = amount
        return payload

    @pytest.mark.parametrize("status", ["succeeded", "completed", "PAID"])
    def test_confirming_statuses(self, fund, payment_service, ledger_repository, status):
        fund(ALICE_ID, 0)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")

        outcome = payment_service.handle_webhook(self._payload("pay-1", status, "500.00")).value

        assert outcome.action == "confirm"
        assert outcome.applied is True
        assert ledger_repository.get_balance(ALICE_ID) == 50000

    @pytest.mark.parametrize("status", ["canceled", "cancelled", "rejected", "failed"])
    def test_rejecting_statuses(self, fund, payment_service, ledger_repository, status):
        fund(ALICE_ID, 100000)
        payment_service.request_withdrawal(ALICE_ID, 600, "wd-1")

        outcome = payment_service.handle_webhook(self._payload("wd-1", status)).value

        assert outcome.action == "reject"
        assert outcome.payment.status == PaymentStatus.REJECTED
        assert ledger_repository.get_balance(ALICE_ID) == 100000

    def test_duplicate_delivery_is_a_no_op(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 0)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")
        payload = self._payload("pay-1", "succeeded", 500)

        first = payment_service.handle_webhook(payload).value
        second = payment_service.handle_webhook(payload).value

        assert first.applied is True
        assert second.applied is False
        assert ledger_repository.get_balance(ALICE_ID) == 50000

    @pytest.mark.parametrize("status", ["pending", "waiting_for_capture"])
    def test_waiting_statuses_are_ignored(self, fund, payment_service, ledger_repository, status):
        fund(ALICE_ID, 0)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")

        outcome = payment_service.handle_webhook(self._payload("pay-1", status)).value

        assert outcome.action == "ignore"
        assert payment_service.get_payment("pay-1").value.status == PaymentStatus.PENDING
        assert ledger_repository.get_balance(ALICE_ID) == 0

    def test_amount_mismatch(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 0)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")

        result = payment_service.handle_webhook(self._payload("pay-1", "succeeded", "5000.00"))

        assert result.error_code == error_codes.AMOUNT_MISMATCH
        assert ledger_repository.get_balance(ALICE_ID) == 0

    def test_unknown_status(self, fund, payment_service):
        fund(ALICE_ID, 0)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")
        result = payment_service.handle_webhook(self._payload("pay-1", "refunded"))
        assert result.error_code == error_codes.VALIDATION_ERROR

    def test_unknown_reference(self, payment_service):
        result = payment_service.handle_webhook(self._payload("nope", "succeeded", 500))
        assert result.error_code == error_codes.PAYMENT_NOT_FOUND

    def test_confirmation_after_rejection(self, fund, payment_service):
        fund(ALICE_ID, 100000)
        payment_service.request_withdrawal(ALICE_ID, 600, "wd-1")
        payment_service.handle_webhook(self._payload("wd-1", "failed"))

        result = payment_service.handle_webhook(self._payload("wd-1", "succeeded"))

        assert result.error_code == error_codes.ALREADY_SETTLED

    def test_deposit_credit_is_published(self, fund, payment_service, dispatcher):
        fund(ALICE_ID, 0)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")
        payment_service.handle_webhook(self._payload("pay-1", "succeeded"))
        payment_service.handle_webhook(self._payload("pay-1", "succeeded"))
        assert dispatcher.pending == 1

    def test_amount_given_as_decimal(self, fund, payment_service):
        fund(ALICE_ID, 0)
        payment_service.record_deposit(ALICE_ID, Decimal("150.25"), "pay-1")
        outcome = payment_service.handle_webhook(self._payload("pay-1", "succeeded", "150.25")).value
        assert outcome.payment.amount == Decimal("150.25")
