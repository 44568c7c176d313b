"""
Background Side-Effect Dispatcher
=================================

Payment initiation (on every drop) and notifications (on match and on
payment success) must never block or fail the operation that triggered them.
Callers ``submit`` a typed job; a single worker task drains the queue.

Delivery policy
---------------
* Each job is attempted up to ``max_attempts`` times with linear backoff
  (``retry_seconds x attempt``).
* A job that still fails is logged with its payload and dropped.
* A successful payment enqueues a ``PAYMENT_SUCCESS`` notification for the
  rider.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Union

from carpool.domain.enums import NotificationType
from carpool.infrastructure.gateways import (
    NotificationGateway,
    NotificationMessage,
    PaymentGateway,
    PaymentInitiation,
)

logger = logging.getLogger(__name__)

Job = Union[PaymentInitiation, NotificationMessage]


class Dispatcher:
    def __init__(
        self,
        payments: PaymentGateway,
        notifications: NotificationGateway,
        max_attempts: int = 3,
        retry_seconds: float = 1.0,
    ):
        self.payments = payments
        self.notifications = notifications
        self.max_attempts = max(1, max_attempts)
        self.retry_seconds = retry_seconds
        self._queue: asyncio.Queue[Job] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    # ── Public API ───────────────────────────────────────────────────

    def submit(self, job: Job) -> None:
        """Enqueue without waiting.  Never raises on behalf of the job."""
        self._queue.put_nowait(job)

    async def start(self) -> None:
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info("Dispatcher started (max_attempts=%d)", self.max_attempts)

    async def stop(self) -> None:
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if not self._queue.empty():
            logger.warning("Dispatcher stopped with %d undelivered jobs", self._queue.qsize())
        logger.info("Dispatcher stopped")

    async def join(self) -> None:
        """Wait until every submitted job has been handled."""
        await self._queue.join()

    # ── Internals ────────────────────────────────────────────────────

    async def _loop(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            job = await self._queue.get()
            try:
                await self.deliver(job)
            finally:
                self._queue.task_done()

    async def deliver(self, job: Job) -> bool:
        """Run one job with retries.  Returns True if it eventually succeeded."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._handle(job)
                return True
            except Exception as exc:
                if attempt == self.max_attempts:
                    logger.error(
                        "Giving up on %s after %d attempts: %s",
                        type(job).__name__, attempt, exc,
                        extra={"job": job.model_dump(mode="json")},
                    )
                    return False
                logger.warning(
                    "%s failed (attempt %d/%d): %s",
                    type(job).__name__, attempt, self.max_attempts, exc,
                )
                await asyncio.sleep(self.retry_seconds * attempt)
        return False

    async def _handle(self, job: Job) -> None:
        if isinstance(job, PaymentInitiation):
            await self.payments.initiate(job)
            logger.info("Payment triggered for rider %d on ride %d", job.rider_id, job.ride_id)
            self.submit(
                NotificationMessage(
                    user_id=job.rider_id,
                    message=f"Payment of {job.amount:.2f} for ride #{job.ride_id} succeeded",
                    type=NotificationType.PAYMENT_SUCCESS,
                )
            )
        else:
            await self.notifications.send(job)
            logger.info("Notification %s sent to user %d", job.type.value, job.user_id)
