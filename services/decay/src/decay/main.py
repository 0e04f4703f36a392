"""
Command-line entry point for the confidence decay job.

Usage::

    pt-decay [--dry-run] [--limit N] [--batch-size N]

SIGINT/SIGTERM stop the run after the current page.  The exit status is
non-zero when any aggregate failed to rescore.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
from collections.abc import Sequence

import structlog

from pt_common.config import get_settings
from pt_common.db.connection import build_engine, build_session_factory
from pt_common.logging import configure_logging

from decay.job import ConfidenceDecayJob, DecayStats
from verification.repository import sql_unit_of_work

logger = structlog.get_logger(__name__)

MAX_BATCH_SIZE = 1000


def _batch_size(value: str) -> int:
    size = int(value)
    if not 1 <= size <= MAX_BATCH_SIZE:
        raise argparse.ArgumentTypeError(f"batch size must be between 1 and {MAX_BATCH_SIZE}")
    return size


def _positive(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("limit must be positive")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pt-decay",
        description="Recalculate confidence scores of provider-plan aggregates.",
    )
    parser.add_argument("--dry-run", action="store_true", help="compute without writing")
    parser.add_argument("--limit", type=_positive, default=None, help="stop after N aggregates")
    parser.add_argument(
        "--batch-size", type=_batch_size, default=None, help="aggregates per page (1-1000)",
    )
    return parser


async def run(args: argparse.Namespace) -> DecayStats:
    settings = get_settings()
    engine = build_engine()
    job = ConfidenceDecayJob(
        sql_unit_of_work(build_session_factory(engine)),
        batch_size=args.batch_size or settings.decay_batch_size,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, job.request_stop)
        except NotImplementedError:
            # Windows event loops do not support signal handlers.
            break

    def _progress(processed: int, updated: int) -> None:
        logger.info("decay_progress", processed=processed, updated=updated)

    try:
        return await job.run(dry_run=args.dry_run, limit=args.limit, on_progress=_progress)
    finally:
        await engine.dispose()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging("decay", settings.log_level, json=settings.log_json)
    stats = asyncio.run(run(args))
    return 1 if stats.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
