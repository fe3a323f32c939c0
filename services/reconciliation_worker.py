"""
Background consumer for payment gateway webhooks.

The HTTP front end acknowledges a webhook as soon as it is queued here. The
worker applies it through PaymentService, retrying only transient store
failures; anything else is logged and dropped, since re-delivery by the
gateway is a no-op once the payment has been applied.
"""

import asyncio
import logging

from services.payment_service import PaymentService, WebhookOutcome
from services.result import Result

logger = logging.getLogger("racebet.services.reconciliation")


class ReconciliationWorker:
    def __init__(
        self,
        payment_service: PaymentService,
        max_attempts: int = 3,
        retry_delay_seconds: float = 1.0,
        maxsize: int = 1000,
    ):
        self.payment_service = payment_service
        self.max_attempts = max(1, max_attempts)
        self.retry_delay_seconds = retry_delay_seconds
        self._queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task | None = None
        self.processed = 0
        self.failed = 0

    async def submit(self, payload: dict) -> None:
        """Queue a webhook payload, waiting if the queue is full."""
        await self._queue.put(payload)

    async def process(self, payload: dict) -> Result[WebhookOutcome]:
        """
        Apply one payload, retrying transient failures.

        The service call is synchronous SQLite work, so it runs in a thread
        to keep the event loop responsive while waiting on the write lock.
        """
        reference = payload.get("paymentReference")
        result: Result[WebhookOutcome] | None = None
        for attempt in range(1, self.max_attempts + 1):
            result = await asyncio.to_thread(self.payment_service.handle_webhook, payload)
            if result.success or not result.retryable:
                break
            logger.warning(
                f"Webhook for {reference} hit a transient error "
                f"(attempt {attempt}/{self.max_attempts}): {result.error}"
            )
            if attempt < self.max_attempts:
                await asyncio.sleep(self.retry_delay_seconds * attempt)

        if result.success:
            self.processed += 1
            outcome = result.value
            logger.info(
                f"Webhook {payload.get('event')} for {reference}: action={outcome.action} "
                f"applied={outcome.applied}"
            )
        else:
            self.failed += 1
            logger.error(f"Webhook for {reference} dropped ({result.error_code}): {result.error}")
        return result

    async def run(self) -> None:
        """Consume queued payloads until cancelled."""
        while True:
            payload = await self._queue.get()
            try:
                await self.process(payload)
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued payload has been processed."""
        await self._queue.join()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="reconciliation-worker")
            logger.info("Reconciliation worker started")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info(f"Reconciliation worker stopped (processed={self.processed}, failed={self.failed})")
