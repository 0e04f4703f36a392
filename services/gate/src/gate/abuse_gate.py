"""
Abuse gate for PlanTrust write endpoints.

Runs, in order, the per-client rate limit, the hidden-field trap and the
bot-likelihood check before any business logic sees a write request.
Failures are raised as classified :mod:`pt_common.errors`; a tripped trap
raises :class:`gate.honeypot.HoneypotTriggered` so the API can answer
with the fake success envelope.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog

from pt_common.config import Settings
from pt_common.errors import (
    BotDetectedError,
    RateLimitError,
    ServiceDegradedError,
    ValidationError,
)
from pt_common.metrics import honeypot_triggers_total
from pt_common.models.enums import EndpointClass

from gate import honeypot
from gate.captcha import CaptchaOutcome, CaptchaVerifier
from gate.rate_limiter import RateDecision, SlidingWindowRateLimiter

logger = structlog.get_logger(__name__)

FailMode = Literal["open", "closed"]

DEGRADED_HEADER = "X-Security-Degraded"


@dataclass
class GateResult:
    """A request that passed the gate.

    Attributes:
        decision: The main rate-limit decision.
        headers: Response headers to attach (budget and degraded flags).
        degraded: ``True`` when admitted under the fail-open fallback.
    """

    decision: RateDecision
    headers: dict[str, str] = field(default_factory=dict)
    degraded: bool = False


class AbuseGate:
    """Screens write requests.

    Args:
        limiter: Sliding-window limiter shared with the browse middleware.
        verifier: Bot-likelihood verifier.
        fail_mode: ``open`` admits under a fallback budget when the bot
            check is unavailable; ``closed`` rejects.
        fallback_limit: Fallback budget per client while degraded.
        fallback_window_s: Window for the fallback budget.
        honeypot_field: Name of the decoy body field.
    """

    def __init__(
        self,
        limiter: SlidingWindowRateLimiter,
        verifier: CaptchaVerifier,
        *,
        fail_mode: FailMode = "open",
        fallback_limit: int = 3,
        fallback_window_s: float = 3600.0,
        honeypot_field: str = honeypot.DEFAULT_FIELD,
    ) -> None:
        self.limiter = limiter
        self.verifier = verifier
        self.fail_mode = fail_mode
        self.fallback_limit = fallback_limit
        self.fallback_window_s = fallback_window_s
        self.honeypot_field = honeypot_field

    @classmethod
    def from_settings(
        cls,
        limiter: SlidingWindowRateLimiter,
        verifier: CaptchaVerifier,
        settings: Settings,
    ) -> AbuseGate:
        logger.info(
            "captcha_fail_mode",
            fail_mode=settings.captcha_fail_mode,
            fallback_limit=settings.captcha_fallback_max_requests,
        )
        return cls(
            limiter,
            verifier,
            fail_mode=settings.captcha_fail_mode,
            fallback_limit=settings.captcha_fallback_max_requests,
            fallback_window_s=settings.captcha_fallback_window_s,
            honeypot_field=settings.honeypot_field,
        )

    async def screen(
        self,
        client_key: str,
        endpoint_class: EndpointClass,
        payload: Mapping[str, Any],
        captcha_token: str | None,
    ) -> GateResult:
        """Admit a write request or raise.

        Args:
            client_key: Client identity (the caller's IP).
            endpoint_class: Budget class of the endpoint.
            payload: Raw request body, inspected for the decoy field.
            captcha_token: Proof-of-humanity token, if the client sent one.

        Raises:
            RateLimitError: Main or fallback budget exhausted.
            HoneypotTriggered: The decoy field was filled in.
            ValidationError: Token missing while the bot check is configured.
            BotDetectedError: The scoring service judged the client a bot.
            ServiceDegradedError: Scoring service down in fail-closed mode.
        """
        decision = await self.limiter.admit(client_key, endpoint_class)
        headers = decision.headers()
        if not decision.allowed:
            raise RateLimitError(
                self.limiter.deny_message(endpoint_class),
                retry_after=decision.retry_after,
                limit=decision.limit,
                remaining=decision.remaining,
                headers=headers,
            )

        if honeypot.is_triggered(payload, self.honeypot_field):
            honeypot_triggers_total.inc()
            logger.warning(
                "honeypot_triggered",
                client=client_key,
                field=self.honeypot_field,
                endpoint_class=endpoint_class.value,
            )
            raise honeypot.HoneypotTriggered(self.honeypot_field)

        if not self.verifier.enabled:
            return GateResult(decision=decision, headers=headers)

        if not captcha_token:
            raise ValidationError(
                "CAPTCHA token required for verification submissions",
                code="CAPTCHA_REQUIRED",
                headers=headers,
            )

        outcome = await self.verifier.verify_human(captcha_token, client_key)
        if outcome is CaptchaOutcome.ACCEPT:
            return GateResult(decision=decision, headers=headers)
        if outcome is CaptchaOutcome.REJECT:
            raise BotDetectedError(
                "Request blocked due to suspicious activity",
                headers=headers,
            )
        return await self._degraded(client_key, endpoint_class, decision, headers)

    async def _degraded(
        self,
        client_key: str,
        endpoint_class: EndpointClass,
        decision: RateDecision,
        headers: dict[str, str],
    ) -> GateResult:
        if self.fail_mode == "closed":
            logger.warning(
                "captcha_fail_closed",
                client=client_key,
                endpoint_class=endpoint_class.value,
            )
            raise ServiceDegradedError(
                "Security verification temporarily unavailable. "
                "Please try again in a few minutes.",
                headers=headers,
            )

        fallback = await self.limiter.admit_key(
            f"captcha-fallback:{client_key}",
            self.fallback_limit,
            self.fallback_window_s,
        )
        headers = {
            **headers,
            DEGRADED_HEADER: "captcha-unavailable",
            **fallback.headers(prefix="X-Fallback-RateLimit"),
        }
        if not fallback.allowed:
            logger.warning(
                "captcha_fallback_limit_exceeded",
                client=client_key,
                limit=fallback.limit,
                retry_after=fallback.retry_after,
            )
            raise RateLimitError(
                "Too many requests while security verification is unavailable. "
                "Please try again later.",
                retry_after=fallback.retry_after,
                limit=fallback.limit,
                headers=headers,
            )

        logger.warning(
            "captcha_fail_open",
            client=client_key,
            endpoint_class=endpoint_class.value,
            fallback_remaining=fallback.remaining,
            fallback_limit=fallback.limit,
        )
        return GateResult(decision=decision, headers=headers, degraded=True)
