"""
Post-commit user notifications.

Services publish messages after their transaction has committed. Publishing
only enqueues; a background task delivers to the sink. A slow, failing or
missing sink can therefore never change the outcome of a financial operation.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass

from telegram import Bot
from telegram.error import TelegramError

logger = logging.getLogger("racebet.services.notifications")


@dataclass(frozen=True)
class Notification:
    user_id: int
    text: str


class INotificationSink(ABC):
    """Interface for message delivery (e.g. a messaging bot)."""

    @abstractmethod
    async def notify(self, user_id: int, text: str) -> None: ...

    async def start(self) -> None:
        """Open any connection the sink needs."""

    async def close(self) -> None:
        """Release the sink's resources."""


class LoggingNotificationSink(INotificationSink):
    """Fallback sink that only logs. Used when no bot token is configured."""

    async def notify(self, user_id: int, text: str) -> None:
        logger.info(f"[notify {user_id}] {text}")


class TelegramNotificationSink(INotificationSink):
    """Deliver notifications as Telegram direct messages via the Bot API."""

    def __init__(self, bot_token: str | None = None, bot: Bot | None = None):
        if bot is None and not bot_token:
            raise ValueError("bot_token is required. Provide via config or constructor.")
        self._bot = bot or Bot(token=bot_token)
        self._started = False

    async def start(self) -> None:
        try:
            await self._bot.initialize()
            self._started = True
            logger.info(f"Connected to Telegram bot: @{self._bot.username}")
        except TelegramError as e:
            # Delivery attempts will fail and be logged; the back end keeps running
            logger.error(f"Failed to initialize Telegram bot: {e}")

    async def close(self) -> None:
        if self._started:
            await self._bot.shutdown()
            self._started = False

    async def notify(self, user_id: int, text: str) -> None:
        await self._bot.send_message(chat_id=user_id, text=text)


class NotificationDispatcher:
    """
    Bounded outbound queue with a single delivery worker.

    `publish` never blocks and never raises: when the queue is full the
    message is dropped and logged. Delivery failures are logged and not
    retried.
    """

    def __init__(self, sink: INotificationSink, maxsize: int = 1000, enabled: bool = True):
        self.sink = sink
        self.enabled = enabled
        self._queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=maxsize)
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._loop_thread: int | None = None
        self.delivered = 0
        self.failed = 0
        self.dropped = 0

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def publish(self, user_id: int, text: str) -> bool | None:
        """
        Enqueue a message for delivery.

        Safe to call from worker threads while the dispatcher runs on an
        event loop. Returns True when queued and False when dropped. From
        another thread the enqueue is handed to the loop and None is
        returned, since a drop there happens later and only shows in
        `dropped`.
        """
        if not self.enabled:
            return False
        notification = Notification(user_id=user_id, text=text)
        loop = self._loop
        if loop is not None and loop.is_running() and threading.get_ident() != self._loop_thread:
            loop.call_soon_threadsafe(self._enqueue, notification)
            return None
        return self._enqueue(notification)

    def _enqueue(self, notification: Notification) -> bool:
        try:
            self._queue.put_nowait(notification)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(f"Notification queue full, dropping message for user {notification.user_id}")
            return False
        return True

    async def _deliver(self, notification: Notification) -> None:
        try:
            await self.sink.notify(notification.user_id, notification.text)
            self.delivered += 1
        except Exception as exc:
            self.failed += 1
            logger.warning(f"Failed to notify user {notification.user_id}: {exc}")

    async def run(self) -> None:
        """Deliver queued notifications until cancelled."""
        while True:
            notification = await self._queue.get()
            try:
                await self._deliver(notification)
            finally:
                self._queue.task_done()

    async def drain(self) -> int:
        """Deliver everything currently queued. Returns the number processed."""
        processed = 0
        while True:
            try:
                notification = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return processed
            try:
                await self._deliver(notification)
            finally:
                self._queue.task_done()
            processed += 1

    async def start(self) -> None:
        if self._task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._loop_thread = threading.get_ident()
        await self.sink.start()
        self._task = asyncio.create_task(self.run(), name="notification-dispatcher")
        logger.info("Notification dispatcher started")

    async def stop(self) -> None:
        """Stop the worker, delivering whatever is still queued first."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self.drain()
        await self.sink.close()
        self._loop = None
        self._loop_thread = None
        logger.info(
            f"Notification dispatcher stopped (delivered={self.delivered}, "
            f"failed={self.failed}, dropped={self.dropped})"
        )
