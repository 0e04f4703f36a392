"""Shared pytest fixtures for the integration test suite."""

from __future__ import annotations

import os

# Set env vars before any pt_common import.
os.environ.setdefault("PT_LOG_JSON", "false")
os.environ.setdefault("PT_REDIS_URL", "")
