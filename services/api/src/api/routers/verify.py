"""
Verification API router for PlanTrust.

Crowd write endpoints (submit a verification, vote on one) and the pair,
recent and stats read views.  Writes run through the abuse gate before
the body is validated, so a bot filling the decoy field gets the fake
success answer whatever else it sent.
"""

from __future__ import annotations

from typing import Any, TypeVar
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query, Request, Response
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from pt_common.errors import ValidationError, field_errors
from pt_common.models.enums import EndpointClass
from pt_common.models.verification import NPI_PATTERN

from api.dependencies import get_abuse_gate, get_client_ip, get_verification_service
from api.schemas.verify_schemas import VerifyRequest, VoteRequest, VoteSummary
from gate.abuse_gate import AbuseGate
from verification.service import RECENT_DEFAULT_LIMIT, RECENT_MAX_LIMIT, VerificationService

router = APIRouter(prefix="/verify", tags=["verification"])

CAPTCHA_HEADER = "X-Captcha-Token"

_M = TypeVar("_M", bound=BaseModel)


def _captcha_token(request: Request, payload: dict[str, Any]) -> str | None:
    token = payload.get("captchaToken") or payload.get("captcha_token") or request.headers.get(CAPTCHA_HEADER)
    return token if isinstance(token, str) else None


def _parse(model: type[_M], payload: dict[str, Any]) -> _M:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError("Validation error", details=field_errors(exc.errors())) from exc


@router.post("", status_code=201)
async def submit_verification(
    request: Request,
    response: Response,
    payload: dict[str, Any] = Body(...),
    gate: AbuseGate = Depends(get_abuse_gate),
    service: VerificationService = Depends(get_verification_service),
    client_ip: str = Depends(get_client_ip),
) -> dict[str, Any]:
    screened = await gate.screen(
        client_ip, EndpointClass.VERIFY, payload, _captcha_token(request, payload),
    )
    response.headers.update(screened.headers)

    body = _parse(VerifyRequest, payload)
    result = await service.submit_verification(
        body, source_ip=client_ip, user_agent=request.headers.get("User-Agent"),
    )
    return {
        "success": True,
        "data": {
            **result.model_dump(mode="json"),
            "message": "Verification submitted successfully",
        },
    }


@router.post("/{verification_id}/vote")
async def vote_on_verification(
    verification_id: UUID,
    request: Request,
    response: Response,
    payload: dict[str, Any] = Body(...),
    gate: AbuseGate = Depends(get_abuse_gate),
    service: VerificationService = Depends(get_verification_service),
    client_ip: str = Depends(get_client_ip),
) -> dict[str, Any]:
    screened = await gate.screen(
        client_ip, EndpointClass.VOTE, payload, _captcha_token(request, payload),
    )
    response.headers.update(screened.headers)

    body = _parse(VoteRequest, payload)
    tally = await service.vote_on_verification(verification_id, body.vote, client_ip)
    summary = VoteSummary(
        id=str(tally.id),
        upvotes=tally.upvotes,
        downvotes=tally.downvotes,
        net_votes=tally.net_votes,
    )
    return {
        "success": True,
        "data": {
            "verification": summary.model_dump(),
            "vote_changed": tally.vote_changed,
            "message": "Vote changed successfully" if tally.vote_changed else "Vote recorded successfully",
        },
    }


@router.get("/recent")
async def recent_verifications(
    limit: int = Query(RECENT_DEFAULT_LIMIT, ge=1, le=RECENT_MAX_LIMIT),
    npi: str | None = Query(None, pattern=NPI_PATTERN),
    plan_id: str | None = Query(None, min_length=1, max_length=50),
    service: VerificationService = Depends(get_verification_service),
) -> dict[str, Any]:
    rows = await service.recent_verifications(limit, npi=npi, plan_id=plan_id)
    return {
        "success": True,
        "data": {
            "verifications": [row.model_dump(mode="json") for row in rows],
            "count": len(rows),
        },
    }


@router.get("/stats")
async def verification_stats(
    service: VerificationService = Depends(get_verification_service),
) -> dict[str, Any]:
    stats = await service.verification_stats()
    return {"success": True, "data": {"stats": stats.model_dump()}}


@router.get("/{npi}/{plan_id}")
async def get_pair(
    npi: str = Path(..., pattern=NPI_PATTERN),
    plan_id: str = Path(..., min_length=1, max_length=50),
    location_id: int | None = Query(None, gt=0),
    include_expired: bool = Query(False),
    service: VerificationService = Depends(get_verification_service),
) -> dict[str, Any]:
    details = await service.get_pair(
        npi, plan_id, location_id=location_id, include_expired=include_expired,
    )
    return {
        "success": True,
        "data": {"npi": npi, "plan_id": plan_id, **details.model_dump(mode="json")},
    }
