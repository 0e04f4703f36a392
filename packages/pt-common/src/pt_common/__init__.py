"""
pt-common: Shared library for PlanTrust.

Provides common data models, configuration management, the error taxonomy,
database connections, messaging utilities, structured logging, and
Prometheus metrics used across all PlanTrust services.
"""

from pt_common.config import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
