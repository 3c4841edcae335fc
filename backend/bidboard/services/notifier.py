"""
BidBoard Backend - Notifiers and Fire-and-Forget Dispatch
==========================================================

What:  Concrete notifiers plus the dispatcher that runs them out-of-band.
How:   The dispatcher wraps each notify() call in an asyncio task, keeps a
       strong reference until it finishes, and logs any failure. Callers get
       control back immediately; nothing a notifier does can reach the
       request's transaction or response.
Who:   ApplicationService dispatches after every commit; the lifespan drains
       pending deliveries and closes the notifier on shutdown.

Resilience (WebhookNotifier):
    1. Circuit breaker checked first; an OPEN circuit skips delivery at once
    2. Tenacity retry with exponential backoff + jitter around the HTTP POST
    3. All retries failed → record failure, raise NotifierError
    The retries run inside the background task, never on the request path.

Backends:
    log       LogNotifier, writes each event to the application log
    webhook   WebhookNotifier, POSTs JSON to settings.notifier_webhook_url
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Set

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from bidboard.config import settings
from bidboard.exceptions import CircuitBreakerOpenError, NotifierError
from bidboard.services.notifier_base import Notifier

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding an unreliable delivery target.

    State Machine:
        CLOSED     deliveries allowed; each failure increments failure_count,
                   reaching failure_threshold opens the circuit
        OPEN       deliveries rejected with CircuitBreakerOpenError until
                   recovery_timeout seconds have passed
        HALF_OPEN  one trial delivery; success closes, failure re-opens

    Not thread-safe. One breaker lives in one process's event loop; other
    processes keep their own.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None
        self._clock = clock

    def can_execute(self) -> bool:
        """
        Returns True when a delivery may proceed.

        Raises:
            CircuitBreakerOpenError if OPEN and the recovery timeout has not elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = self._clock() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info("Notifier circuit breaker HALF_OPEN after %.1fs", elapsed)
                self.state = self.HALF_OPEN
                return True
            raise CircuitBreakerOpenError(recovery_time=int(self.recovery_timeout - elapsed))

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Notifier circuit breaker CLOSED (target recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == self.HALF_OPEN:
            logger.warning("Notifier circuit breaker back to OPEN (trial delivery failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Notifier circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Notifiers
# ══════════════════════════════════════════════════════════════════════════

class LogNotifier(Notifier):
    """Writes events to the log. Default backend for development."""

    async def notify(self, user_id: uuid.UUID, event_type: str, payload: Dict[str, Any]) -> None:
        logger.info("Notification %s → user %s: %s", event_type, user_id, payload)


class WebhookNotifier(Notifier):
    """
    POSTs each event as JSON to a webhook (an email/push relay, a queue ingress).

    Body:
        {"id": "...", "user_id": "...", "event_type": "application_accepted",
         "payload": {...}, "sent_at": "2024-01-15T12:00:00+00:00"}

    Any non-2xx response or transport error counts as a failed attempt.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        max_attempts: int = 3,
        min_wait: float = 1,
        max_wait: float = 10,
        jitter: float = 1,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.max_attempts = max_attempts
        self.min_wait = min_wait
        self.max_wait = max_wait
        self.jitter = jitter
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def notify(self, user_id: uuid.UUID, event_type: str, payload: Dict[str, Any]) -> None:
        delivery_id = str(uuid.uuid4())[:8]

        self.circuit_breaker.can_execute()

        body = {
            "id": delivery_id,
            "user_id": str(user_id),
            "event_type": event_type,
            "payload": payload,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            await self._post_with_retry(body, delivery_id)
        except RetryError as e:
            self.circuit_breaker.record_failure()
            last = e.last_attempt.exception() if e.last_attempt else None
            raise NotifierError(
                message=f"Webhook delivery failed after {self.max_attempts} attempts",
                context={
                    "delivery_id": delivery_id,
                    "event_type": event_type,
                    "error_type": type(last).__name__ if last else None,
                },
            ) from last
        self.circuit_breaker.record_success()

    async def _post_with_retry(self, body: Dict[str, Any], delivery_id: str) -> None:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.HTTPError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter(initial=self.min_wait, max=self.max_wait, jitter=self.jitter),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        async for attempt in retrying:
            with attempt:
                start = time.perf_counter()
                response = await self.client.post(self.url, json=body)
                response.raise_for_status()
                logger.debug(
                    "[%s] Webhook delivered %s in %.0fms",
                    delivery_id,
                    body["event_type"],
                    (time.perf_counter() - start) * 1000,
                )

    async def aclose(self) -> None:
        await self.client.aclose()


def build_notifier() -> Notifier:
    """Construct the notifier selected by settings.notifier_backend."""
    if settings.notifier_backend == "webhook":
        return WebhookNotifier(
            url=settings.notifier_webhook_url,
            timeout=settings.notifier_timeout_seconds,
            max_attempts=settings.retry_max_attempts,
            min_wait=settings.retry_min_wait,
            max_wait=settings.retry_max_wait,
            circuit_breaker=CircuitBreaker(
                failure_threshold=settings.cb_failure_threshold,
                recovery_timeout=settings.cb_recovery_timeout,
            ),
        )
    return LogNotifier()


# ══════════════════════════════════════════════════════════════════════════
# Dispatcher
# ══════════════════════════════════════════════════════════════════════════

class NotificationDispatcher:
    """
    Runs notifier calls as background tasks.

    dispatch() never raises and never awaits delivery. Failures are logged at
    WARNING with the event and recipient, then dropped; there is no
    synchronous retry.
    """

    def __init__(self, notifier: Notifier):
        self.notifier = notifier
        self._pending: Set[asyncio.Task] = set()

    def dispatch(self, user_id: uuid.UUID, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            task = asyncio.get_running_loop().create_task(
                self._deliver(user_id, event_type, payload)
            )
        except RuntimeError:
            logger.warning(
                "No running event loop; notification %s for user %s dropped",
                event_type,
                user_id,
            )
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, user_id: uuid.UUID, event_type: str, payload: Dict[str, Any]) -> None:
        try:
            await self.notifier.notify(user_id, event_type, payload)
        except CircuitBreakerOpenError as e:
            logger.warning(
                "Notification %s for user %s skipped: %s", event_type, user_id, e.message
            )
        except Exception as e:
            logger.warning(
                "Notification %s for user %s failed: %s",
                event_type,
                user_id,
                e,
                exc_info=True,
            )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if not self._pending:
            return
        done, not_done = await asyncio.wait(set(self._pending), timeout=timeout)
        if not_done:
            logger.warning("%d notifications still in flight after drain", len(not_done))

    async def aclose(self, timeout: Optional[float] = 5.0) -> None:
        await self.drain(timeout=timeout)
        await self.notifier.aclose()


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the circuit breaker state, shared by every request in this process
notification_dispatcher = NotificationDispatcher(build_notifier())
