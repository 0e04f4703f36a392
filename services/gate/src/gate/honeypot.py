"""
Hidden-field bot trap for PlanTrust.

Forms carry a decoy field that humans never see.  Anything filling it is
a bot; it is answered with an ordinary-looking success so it does not
learn it was caught, and nothing else happens.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

DEFAULT_FIELD = "website"

# What a trapped bot receives instead of the real response.
FAKE_SUCCESS: dict[str, Any] = {"success": True, "data": {"id": "submitted"}}


class HoneypotTriggered(Exception):
    """Raised by the gate when the decoy field is filled in."""

    def __init__(self, field: str) -> None:
        super().__init__(f"honeypot field {field!r} was filled")
        self.field = field


def is_triggered(payload: Mapping[str, Any], field: str = DEFAULT_FIELD) -> bool:
    """Return ``True`` if *field* is present in *payload* with a non-empty value."""
    return bool(payload.get(field))
