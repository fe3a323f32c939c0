"""Tests for the background webhook consumer."""

import pytest

from services import error_codes
from services.reconciliation_worker import ReconciliationWorker
from services.result import Result
from tests.conftest import ALICE_ID


def _payload(reference: str, status: str = "succeeded") -> dict:
    return {"event": "payment.updated", "paymentReference": reference, "status": status}


class TestReconciliationWorker:
    @pytest.mark.asyncio
    async def test_process_applies_webhook(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 0)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")
        worker = ReconciliationWorker(payment_service, retry_delay_seconds=0)

        result = await worker.process(_payload("pay-1"))

        assert result.success
        assert result.value.applied
        assert worker.processed == 1
        assert ledger_repository.get_balance(ALICE_ID) == 50000

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, fund, payment_service, ledger_repository, monkeypatch):
        fund(ALICE_ID, 0)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")
        real_handle = payment_service.handle_webhook
        calls = []

        def flaky_handle(payload):
            calls.append(payload["paymentReference"])
            if len(calls) == 1:
                return Result.fail("database is locked", code=error_codes.TRANSIENT_STORE_ERROR)
            return real_handle(payload)

        monkeypatch.setattr(payment_service, "handle_webhook", flaky_handle)
        worker = ReconciliationWorker(payment_service, max_attempts=3, retry_delay_seconds=0)

        result = await worker.process(_payload("pay-1"))

        assert result.success
        assert len(calls) == 2
        assert ledger_repository.get_balance(ALICE_ID) == 50000

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, payment_service, monkeypatch):
        calls = []

        def always_locked(payload):
            calls.append(payload)
            return Result.fail("database is locked", code=error_codes.TRANSIENT_STORE_ERROR)

        monkeypatch.setattr(payment_service, "handle_webhook", always_locked)
        worker = ReconciliationWorker(payment_service, max_attempts=3, retry_delay_seconds=0)

        result = await worker.process(_payload("pay-1"))

        assert result.error_code == error_codes.TRANSIENT_STORE_ERROR
        assert len(calls) == 3
        assert worker.failed == 1

    @pytest.mark.asyncio
    async def test_permanent_failure_is_not_retried(self, payment_service):
        worker = ReconciliationWorker(payment_service, max_attempts=3, retry_delay_seconds=0)

        result = await worker.process(_payload("unknown-ref"))

        assert result.error_code == error_codes.PAYMENT_NOT_FOUND
        assert worker.failed == 1

    @pytest.mark.asyncio
    async def test_queued_payloads_processed_in_background(self, fund, payment_service, ledger_repository):
        fund(ALICE_ID, 0)
        payment_service.record_deposit(ALICE_ID, 500, "pay-1")
        payment_service.record_deposit(ALICE_ID, 200, "pay-2")
        worker = ReconciliationWorker(payment_service, retry_delay_seconds=0)
        worker.start()

        await worker.submit(_payload("pay-1"))
        await worker.submit(_payload("pay-2"))
        await worker.submit(_payload("pay-1"))
        await worker.join()
        await worker.stop()

        assert worker.processed == 3
        assert ledger_repository.get_balance(ALICE_ID) == 70000
