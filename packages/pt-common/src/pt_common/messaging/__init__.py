"""
Messaging utilities for PlanTrust.

Redis client wrapper and the shared Celery application.
"""

from pt_common.messaging.redis_client import ACCEPTANCE_UPDATED_CHANNEL, RedisClient

__all__ = [
    "ACCEPTANCE_UPDATED_CHANNEL",
    "RedisClient",
]
