"""
BidBoard Backend - Notifier Unit Tests
=======================================

What we test:
    ✅ Circuit breaker state transitions (CLOSED → OPEN → HALF_OPEN → CLOSED)
    ✅ WebhookNotifier posts JSON, retries on 5xx, raises NotifierError at the end
    ✅ An open circuit skips delivery without touching the network
    ✅ Dispatcher logs failures instead of raising, drains pending deliveries
"""

import json
import logging
import uuid

import httpx
import pytest

from bidboard.exceptions import CircuitBreakerOpenError, NotifierError
from bidboard.services.notifier import (
    CircuitBreaker,
    LogNotifier,
    NotificationDispatcher,
    WebhookNotifier,
    build_notifier,
)


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class TestCircuitBreaker:

    def test_starts_closed(self):
        """Fresh breaker should allow all requests."""
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=10)
        assert cb.state == CircuitBreaker.CLOSED
        assert cb.can_execute() is True

    def test_opens_after_threshold_failures(self):
        """Should transition to OPEN after N consecutive failures."""
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=10, clock=FakeClock())
        for _ in range(3):
            cb.record_failure()
        assert cb.state == CircuitBreaker.OPEN

    def test_open_circuit_raises(self):
        """OPEN circuit should raise CircuitBreakerOpenError with time remaining."""
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60, clock=clock)
        cb.record_failure()
        clock.advance(15)
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            cb.can_execute()
        assert exc_info.value.recovery_time == 45

    def test_half_open_after_timeout(self):
        """Should allow one trial delivery once the recovery timeout elapses."""
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=10, clock=clock)
        cb.record_failure()
        clock.advance(10)
        assert cb.can_execute() is True
        assert cb.state == CircuitBreaker.HALF_OPEN

    def test_success_closes_circuit(self):
        """A success in HALF_OPEN should reset to CLOSED."""
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=10, clock=clock)
        cb.record_failure()
        clock.advance(11)
        cb.can_execute()
        cb.record_success()
        assert cb.state == CircuitBreaker.CLOSED
        assert cb.failure_count == 0

    def test_half_open_failure_reopens(self):
        clock = FakeClock()
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=10, clock=clock)
        for _ in range(5):
            cb.record_failure()
        clock.advance(10)
        cb.can_execute()
        cb.record_failure()
        assert cb.state == CircuitBreaker.OPEN

    def test_success_resets_count_while_closed(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=10, clock=FakeClock())
        cb.record_failure()
        cb.record_failure()
        cb.record_success()
        cb.record_failure()
        assert cb.state == CircuitBreaker.CLOSED
        assert cb.failure_count == 1


# ══════════════════════════════════════════════════════════════════════════
# WebhookNotifier (httpx.MockTransport, no network)
# ══════════════════════════════════════════════════════════════════════════

def make_webhook(handler, **kwargs):
    return WebhookNotifier(
        url="http://relay.test/events",
        max_attempts=3,
        min_wait=0,
        max_wait=0,
        jitter=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestWebhookNotifier:

    @pytest.mark.asyncio
    async def test_posts_event_as_json(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(202)

        notifier = make_webhook(handler)
        user_id = uuid.uuid4()
        await notifier.notify(user_id, "application_accepted", {"project_id": "p-1"})
        await notifier.aclose()

        assert len(requests) == 1
        body = json.loads(requests[0].content)
        assert body["user_id"] == str(user_id)
        assert body["event_type"] == "application_accepted"
        assert body["payload"] == {"project_id": "p-1"}
        assert "sent_at" in body and "id" in body

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            return httpx.Response(503 if calls["n"] < 3 else 200)

        notifier = make_webhook(handler)
        await notifier.notify(uuid.uuid4(), "application_rejected", {})
        await notifier.aclose()

        assert calls["n"] == 3
        assert notifier.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_notifier_error(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            return httpx.Response(500)

        notifier = make_webhook(handler)
        with pytest.raises(NotifierError) as exc_info:
            await notifier.notify(uuid.uuid4(), "application_received", {})
        await notifier.aclose()

        assert calls["n"] == 3
        assert exc_info.value.context["event_type"] == "application_received"
        assert exc_info.value.context["error_type"] == "HTTPStatusError"
        assert notifier.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_open_circuit_skips_request(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            return httpx.Response(200)

        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60, clock=FakeClock())
        breaker.record_failure()
        notifier = make_webhook(handler, circuit_breaker=breaker)

        with pytest.raises(CircuitBreakerOpenError):
            await notifier.notify(uuid.uuid4(), "application_accepted", {})
        await notifier.aclose()
        assert calls["n"] == 0

    def test_default_backend_is_log(self):
        assert isinstance(build_notifier(), LogNotifier)


# ══════════════════════════════════════════════════════════════════════════
# Dispatcher
# ══════════════════════════════════════════════════════════════════════════

class TestNotificationDispatcher:

    @pytest.mark.asyncio
    async def test_delivers_in_background(self, notifier):
        dispatcher = NotificationDispatcher(notifier)
        user_id = uuid.uuid4()

        dispatcher.dispatch(user_id, "application_received", {"a": 1})
        assert dispatcher.pending == 1

        await dispatcher.drain(timeout=5)
        assert dispatcher.pending == 0
        assert notifier.events_for(user_id) == ["application_received"]

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, notifier, caplog):
        notifier.fail = True
        dispatcher = NotificationDispatcher(notifier)

        with caplog.at_level(logging.WARNING, logger="bidboard.services.notifier"):
            dispatcher.dispatch(uuid.uuid4(), "application_accepted", {})
            await dispatcher.drain(timeout=5)

        assert "application_accepted" in caplog.text
        assert "failed" in caplog.text

    @pytest.mark.asyncio
    async def test_open_circuit_is_logged_as_skipped(self, caplog):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60, clock=FakeClock())
        breaker.record_failure()
        webhook = make_webhook(lambda request: httpx.Response(200), circuit_breaker=breaker)
        dispatcher = NotificationDispatcher(webhook)

        with caplog.at_level(logging.WARNING, logger="bidboard.services.notifier"):
            dispatcher.dispatch(uuid.uuid4(), "application_rejected", {})
            await dispatcher.aclose(timeout=5)

        assert "skipped" in caplog.text

    def test_dispatch_without_loop_drops_event(self, notifier, caplog):
        dispatcher = NotificationDispatcher(notifier)
        with caplog.at_level(logging.WARNING, logger="bidboard.services.notifier"):
            dispatcher.dispatch(uuid.uuid4(), "application_expired", {})
        assert dispatcher.pending == 0
        assert "dropped" in caplog.text
