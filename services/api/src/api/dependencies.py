"""
FastAPI dependency injection providers for the PlanTrust API.

Everything long-lived is built once in the application lifespan and
stored on ``app.state``; these callables hand it to route handlers.
"""

from __future__ import annotations

from fastapi import Request

from pt_common.config import Settings, get_settings

from decay.job import ConfidenceDecayJob
from gate.abuse_gate import AbuseGate
from verification.service import VerificationService


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_verification_service(request: Request) -> VerificationService:
    return request.app.state.verification_service


def get_abuse_gate(request: Request) -> AbuseGate:
    return request.app.state.abuse_gate


def get_decay_job(request: Request) -> ConfidenceDecayJob:
    return request.app.state.decay_job


def resolve_client_ip(request: Request, trust_forwarded_for: bool = False) -> str:
    """Client identity used for rate limiting, Sybil checks and votes.

    ``X-Forwarded-For`` is honoured only behind a trusted proxy; its first
    hop is the original client.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def get_client_ip(request: Request) -> str:
    return resolve_client_ip(request, get_app_settings(request).trust_forwarded_for)
