"""
Lead intake API routes.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from lead_scoring.models import LeadSubmission

from ..services import IntakeResult, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


# Models
class LeadSubmissionRequest(BaseModel):
    """Contact-form submission."""
    name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    case_type: str = Field(min_length=1, max_length=64)
    message: str = Field(default="", max_length=10000)
    phone: Optional[str] = None
    preferred_contact: Optional[str] = None
    location: Optional[str] = None
    language: Optional[str] = Field(default=None, max_length=8)
    source: Optional[str] = None

    def to_submission(self) -> LeadSubmission:
        return LeadSubmission(**self.model_dump())


class ScoreResponse(BaseModel):
    """Scored lead."""
    lead: Dict[str, Any]


class IntakeResponse(BaseModel):
    """Scored and routed lead."""
    lead_id: str
    lead: Dict[str, Any]
    decision: Optional[Dict[str, Any]] = None
    pending: bool = False
    error: Optional[str] = None


class RetryResponse(BaseModel):
    """Pending queue retry summary."""
    attempted: int
    routed: int
    still_pending: int
    results: List[IntakeResponse]


def _to_response(result: IntakeResult) -> IntakeResponse:
    return IntakeResponse(
        lead_id=result.lead_id,
        lead=result.lead.to_dict(),
        decision=result.decision.to_dict() if result.decision else None,
        pending=result.pending,
        error=result.error,
    )


@router.post("/leads/score", response_model=ScoreResponse)
async def score_lead(request: LeadSubmissionRequest):
    """Score a submission without routing it."""
    lead = get_services().score(request.to_submission())
    return ScoreResponse(lead=lead.to_dict())


@router.post("/leads/intake", response_model=IntakeResponse)
async def intake_lead(request: LeadSubmissionRequest):
    """
    Score a submission and route it to a team.

    Returns 503 when the roster store is unavailable; the lead stays in the
    pending queue for POST /leads/pending/retry.
    """
    result = await get_services().intake(request.to_submission())
    if result.pending:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "message": "Roster unavailable, lead queued for retry",
                "lead_id": result.lead_id,
                "error": result.error,
            },
        )
    return _to_response(result)


@router.get("/leads/pending")
async def list_pending():
    """Leads waiting for the roster store to come back."""
    services = get_services()
    return {
        "count": len(services.pending),
        "leads": [
            {"lead_id": lead_id, **lead.to_dict()}
            for lead_id, lead in services.pending.items()
        ],
    }


@router.post("/leads/pending/retry", response_model=RetryResponse)
async def retry_pending():
    """Re-route pending leads in arrival order."""
    services = get_services()
    results = await services.retry_pending()
    routed = sum(1 for r in results if not r.pending)
    logger.info(f"Pending retry: {routed}/{len(results)} routed, {len(services.pending)} still pending")
    return RetryResponse(
        attempted=len(results),
        routed=routed,
        still_pending=len(services.pending),
        results=[_to_response(r) for r in results],
    )
