"""
Sybil checker for crowd verifications.

Rejects a second submission for the same provider-plan pair from the same
IP address or the same contact address inside a rolling window.  The two
signals are checked independently: matching either one is enough.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol

import structlog

from pt_common.errors import ConflictError

logger = structlog.get_logger(__name__)

DEFAULT_WINDOW_DAYS = 30

SYBIL_DUPLICATE = "SYBIL_DUPLICATE"


class SubmissionHistory(Protocol):
    """Lookups the checker needs; implemented by the verification repository."""

    async def has_recent_from_ip(
        self, npi: str, plan_id: str, source_ip: str, since: datetime,
    ) -> bool: ...

    async def has_recent_from_contact(
        self, npi: str, plan_id: str, submitted_by: str, since: datetime,
    ) -> bool: ...


class SybilChecker:
    """Duplicate-submission gate.

    Parameters
    ----------
    window_days:
        Length of the trailing window, in days.
    """

    def __init__(self, window_days: int = DEFAULT_WINDOW_DAYS) -> None:
        self.window_days = window_days

    async def check(
        self,
        history: SubmissionHistory,
        *,
        npi: str,
        plan_id: str,
        source_ip: str | None,
        submitted_by: str | None,
        now: datetime,
    ) -> None:
        """Raise :class:`ConflictError` when the submission is a repeat.

        Must run inside the same transaction that inserts the verification,
        after the pair lock is held.
        """
        since = now - timedelta(days=self.window_days)
        days = self.window_days

        if source_ip and await history.has_recent_from_ip(npi, plan_id, source_ip, since):
            logger.warning("sybil_duplicate_ip", npi=npi, plan_id=plan_id)
            raise ConflictError(
                "You have already submitted a verification for this provider-plan "
                f"pair within the last {days} days.",
                code=SYBIL_DUPLICATE,
            )

        if submitted_by and await history.has_recent_from_contact(
            npi, plan_id, submitted_by, since,
        ):
            logger.warning("sybil_duplicate_contact", npi=npi, plan_id=plan_id)
            raise ConflictError(
                "This email has already submitted a verification for this "
                f"provider-plan pair within the last {days} days.",
                code=SYBIL_DUPLICATE,
            )
