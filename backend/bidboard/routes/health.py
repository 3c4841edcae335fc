"""
BidBoard Backend - Health Check Route
======================================

Status levels:
    healthy     database reachable, notifier delivering     (200)
    degraded    notifier circuit open                       (200)
    unhealthy   database unreachable                        (503)

Notifications are a side channel, so a failing notifier only degrades.
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from bidboard import __version__
from bidboard.database import engine
from bidboard.schemas.application import HealthResponse
from bidboard.services.notifier import CircuitBreaker, notification_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    notifier_status = "available"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", e)

    breaker = getattr(notification_dispatcher.notifier, "circuit_breaker", None)
    if breaker is not None and breaker.state == CircuitBreaker.OPEN:
        notifier_status = "circuit_open"
        if overall == "healthy":
            overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        notifier=notifier_status,
        pending_notifications=notification_dispatcher.pending,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
