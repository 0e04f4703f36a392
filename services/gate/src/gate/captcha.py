"""
Bot-likelihood check for PlanTrust (Google reCAPTCHA v3 compatible).

Forwards a client-supplied token to the configured scoring service and
classifies the answer as ACCEPT, REJECT or UNAVAILABLE.  The call carries
a hard timeout; every transport failure, timeout, non-2xx status or
undecodable body is UNAVAILABLE, leaving the fail-open / fail-closed
decision to :class:`gate.abuse_gate.AbuseGate`.
"""

from __future__ import annotations

import asyncio
import enum
from typing import Any

import httpx
import structlog

from pt_common.config import Settings
from pt_common.metrics import captcha_outcomes_total

logger = structlog.get_logger(__name__)

_DEFAULT_VERIFY_URL = "https://www.google.com/recaptcha/api/siteverify"


class CaptchaOutcome(str, enum.Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    UNAVAILABLE = "unavailable"


class CaptchaVerifier:
    """Verify proof-of-humanity tokens against a reCAPTCHA-style endpoint.

    Args:
        secret: Shared secret.  Empty disables verification entirely.
        verify_url: Scoring endpoint (form-encoded POST).
        min_score: Scores below this are treated as bots.
        timeout_s: Hard timeout for the whole call.
        client: Optional shared ``httpx.AsyncClient``; one is created
            lazily (and owned) otherwise.
    """

    def __init__(
        self,
        secret: str,
        *,
        verify_url: str = _DEFAULT_VERIFY_URL,
        min_score: float = 0.5,
        timeout_s: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._secret = secret
        self.verify_url = verify_url
        self.min_score = min_score
        self.timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> CaptchaVerifier:
        verifier = cls(
            settings.captcha_secret_key,
            verify_url=settings.captcha_verify_url,
            min_score=settings.captcha_min_score,
            timeout_s=settings.captcha_timeout_s,
            client=client,
        )
        if not verifier.enabled:
            logger.warning("captcha_not_configured", note="bot check skipped for all requests")
        return verifier

    @property
    def enabled(self) -> bool:
        return bool(self._secret)

    async def _get_client(self) -> httpx.AsyncClient:
        """Return (and lazily create) the ``httpx.AsyncClient``."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
            self._owns_client = True
        return self._client

    async def _post(self, token: str, client_ip: str) -> dict[str, Any]:
        client = await self._get_client()
        resp = await client.post(
            self.verify_url,
            data={"secret": self._secret, "response": token, "remoteip": client_ip},
            timeout=self.timeout_s,
        )
        resp.raise_for_status()
        body = resp.json()
        if not isinstance(body, dict):
            raise ValueError("bot-check response is not a JSON object")
        return body

    async def verify_human(self, token: str, client_ip: str) -> CaptchaOutcome:
        """Classify *token* for the request coming from *client_ip*."""
        try:
            body = await asyncio.wait_for(self._post(token, client_ip), timeout=self.timeout_s)
        except (TimeoutError, asyncio.TimeoutError, httpx.HTTPError, ValueError) as exc:
            logger.error(
                "captcha_service_unavailable",
                client_ip=client_ip,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            captcha_outcomes_total.labels(outcome=CaptchaOutcome.UNAVAILABLE.value).inc()
            return CaptchaOutcome.UNAVAILABLE

        outcome = self._classify(body, client_ip)
        captcha_outcomes_total.labels(outcome=outcome.value).inc()
        return outcome

    def _classify(self, body: dict[str, Any], client_ip: str) -> CaptchaOutcome:
        if not body.get("success"):
            logger.warning(
                "captcha_verification_failed",
                client_ip=client_ip,
                errors=body.get("error-codes"),
                action=body.get("action"),
            )
            return CaptchaOutcome.REJECT

        score = body.get("score")
        if score is not None and float(score) < self.min_score:
            logger.warning(
                "captcha_low_score",
                client_ip=client_ip,
                score=score,
                threshold=self.min_score,
                action=body.get("action"),
            )
            return CaptchaOutcome.REJECT
        return CaptchaOutcome.ACCEPT

    async def close(self) -> None:
        """Close the underlying HTTP client if this verifier created it."""
        if self._owns_client and self._client is not None and not self._client.is_closed:
            await self._client.aclose()
