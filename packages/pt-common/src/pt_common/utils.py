"""
Shared utility functions for PlanTrust.

Contains general-purpose helpers used across multiple services: UTC
timestamps, day arithmetic, and the best-effort wrapper for side effects
whose failure must never reach the caller's success path.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable
from datetime import datetime, timezone

import structlog

logger = structlog.get_logger(__name__)

SECONDS_PER_DAY = 86_400


def utc_now() -> datetime:
    """Return the current timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed from *earlier* to *later*, floored."""
    return math.floor((later - earlier).total_seconds() / SECONDS_PER_DAY)


async def best_effort(
    awaitable: Awaitable[object],
    event: str,
    *,
    timeout: float = 1.0,
    **context: object,
) -> bool:
    """Await *awaitable*, swallowing and logging any failure.

    Args:
        awaitable: The side effect to run.
        event: Log event name used when the side effect fails.
        timeout: Seconds to wait before giving up.
        context: Extra fields for the failure log line.

    Returns:
        ``True`` if the side effect completed, ``False`` otherwise.
    """
    try:
        await asyncio.wait_for(awaitable, timeout=timeout)
        return True
    except Exception as exc:  # noqa: BLE001 – side effects never propagate
        logger.warning(event, error=str(exc), error_type=type(exc).__name__, **context)
        return False
