"""
Verification API schemas for PlanTrust.

Request bodies for the crowd write endpoints.  Both extend the shared
models with the abuse-gate fields (``captcha_token`` and the decoy
``website`` field) and accept ``camelCase`` keys.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pt_common.models import VerificationSubmission, VoteDirection


class VerifyRequest(VerificationSubmission):
    captcha_token: str | None = Field(default=None, max_length=4096)
    website: str | None = None


class VoteRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    vote: VoteDirection
    captcha_token: str | None = Field(default=None, max_length=4096)
    website: str | None = None


class VoteSummary(BaseModel):
    id: str
    upvotes: int
    downvotes: int
    net_votes: int
