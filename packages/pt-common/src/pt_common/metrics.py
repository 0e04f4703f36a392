"""
Prometheus metrics helpers for PlanTrust.

Shared metric definitions for the abuse gate, the verification service and
the confidence decay job.  Metrics are registered once on import and
exposed by the API gateway's ``/metrics`` mount.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# ── Abuse gate ──
rate_limit_decisions_total = Counter(
    "pt_rate_limit_decisions_total",
    "Rate-limit decisions by endpoint class and outcome",
    ["endpoint_class", "decision"],
)
captcha_outcomes_total = Counter(
    "pt_captcha_outcomes_total",
    "Bot-check outcomes",
    ["outcome"],
)
honeypot_triggers_total = Counter(
    "pt_honeypot_triggers_total",
    "Requests caught by the hidden-field trap",
)

# ── Verification service ──
verifications_total = Counter(
    "pt_verifications_total",
    "Verification submissions by outcome",
    ["outcome"],
)
votes_total = Counter(
    "pt_votes_total",
    "Votes by direction and outcome",
    ["direction", "outcome"],
)
status_changes_total = Counter(
    "pt_acceptance_status_changes_total",
    "Aggregate status transitions",
    ["from_status", "to_status"],
)

# ── Decay job ──
decay_rows_total = Counter(
    "pt_decay_rows_total",
    "Aggregates visited by the decay job by result",
    ["result"],
)
decay_run_duration_seconds = Histogram(
    "pt_decay_run_duration_seconds",
    "Wall-clock duration of a confidence decay run",
)
