"""
PlanTrust Abuse Gate.

Screens every write before business logic runs: sliding-window rate
limiting over a local or Redis-backed window store, the reCAPTCHA
bot-likelihood check, and the hidden-field trap.
"""

from gate.abuse_gate import AbuseGate, GateResult
from gate.captcha import CaptchaOutcome, CaptchaVerifier
from gate.honeypot import FAKE_SUCCESS, HoneypotTriggered
from gate.rate_limiter import (
    MemoryWindowStore,
    RateDecision,
    RateWindowStore,
    RedisWindowStore,
    SlidingWindowRateLimiter,
    build_window_store,
)

__all__ = [
    "FAKE_SUCCESS",
    "AbuseGate",
    "CaptchaOutcome",
    "CaptchaVerifier",
    "GateResult",
    "HoneypotTriggered",
    "MemoryWindowStore",
    "RateDecision",
    "RateWindowStore",
    "RedisWindowStore",
    "SlidingWindowRateLimiter",
    "build_window_store",
]
