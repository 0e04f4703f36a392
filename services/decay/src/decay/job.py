"""
Confidence decay job for PlanTrust.

Scores drift as verifications age and expire even when nobody writes to a
pair.  The job walks every aggregate that has at least one verification,
in ``id`` order with a keyset cursor, and rescores it from current data.
Each page runs in its own transaction, so a run can be interrupted between
pages and resumed without holding locks for the whole table.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime

import structlog

from pt_common.metrics import decay_rows_total, decay_run_duration_seconds
from pt_common.utils import utc_now

from verification.aggregate import rescore
from verification.repository import UnitOfWork

logger = structlog.get_logger(__name__)

DEFAULT_BATCH_SIZE = 100

ProgressCallback = Callable[[int, int], None]


@dataclass
class DecayStats:
    """Counters for one decay run."""

    processed: int = 0
    updated: int = 0
    unchanged: int = 0
    errors: int = 0
    duration_ms: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class ConfidenceDecayJob:
    """Batch rescoring of acceptance aggregates.

    Parameters
    ----------
    unit_of_work:
        Factory yielding a repository bound to one transaction.
    batch_size:
        Default page size.
    clock:
        Returns the current UTC time; read once per page.
    """

    def __init__(
        self,
        unit_of_work: UnitOfWork,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._uow = unit_of_work
        self.batch_size = batch_size
        self._clock = clock
        self._stop_requested = False

    def request_stop(self) -> None:
        """Ask a running job to stop after the current page."""
        self._stop_requested = True
        logger.info("decay_stop_requested")

    async def run(
        self,
        *,
        dry_run: bool = False,
        limit: int | None = None,
        batch_size: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> DecayStats:
        """Rescore aggregates and write back scores that changed.

        Args:
            dry_run: Compute and count, but write nothing.
            limit: Stop after this many aggregates.
            batch_size: Page size for this run.
            on_progress: Called with ``(processed, updated)`` after each page.

        Returns:
            Run counters.
        """
        started = time.monotonic()
        batch_size = batch_size or self.batch_size
        self._stop_requested = False
        stats = DecayStats()

        async with self._uow() as repo:
            total = await repo.count_scored_acceptances()
        if limit is not None:
            total = min(total, limit)

        logger.info("decay_started", total=total, dry_run=dry_run, batch_size=batch_size)

        cursor = 0
        while stats.processed < total and not self._stop_requested:
            take = min(batch_size, total - stats.processed)
            async with self._uow() as repo:
                page = await repo.acceptance_page(cursor, take)
                if not page:
                    break
                now = self._clock()
                for acceptance, specialty, taxonomy in page:
                    cursor = acceptance.id
                    stats.processed += 1
                    try:
                        async with repo.savepoint():
                            tallies = await repo.pair_tallies(
                                acceptance.provider_npi, acceptance.plan_id, now,
                            )
                            confidence = rescore(
                                acceptance,
                                tallies,
                                specialty=specialty,
                                taxonomy_description=taxonomy,
                                now=now,
                            )
                            if confidence.score == acceptance.confidence_score:
                                stats.unchanged += 1
                                decay_rows_total.labels(result="unchanged").inc()
                                continue
                            if not dry_run:
                                acceptance.confidence_score = confidence.score
                                acceptance.verification_count = tallies.verification_count
                            stats.updated += 1
                            decay_rows_total.labels(result="updated").inc()
                    except Exception:  # noqa: BLE001 – one bad row must not stop the run
                        stats.errors += 1
                        decay_rows_total.labels(result="error").inc()
                        logger.exception("decay_row_failed", acceptance_id=acceptance.id)

            if on_progress is not None:
                on_progress(stats.processed, stats.updated)

        stats.duration_ms = int((time.monotonic() - started) * 1000)
        decay_run_duration_seconds.observe(stats.duration_ms / 1000)
        logger.info(
            "decay_completed",
            dry_run=dry_run,
            stopped_early=self._stop_requested,
            **stats.as_dict(),
        )
        return stats
