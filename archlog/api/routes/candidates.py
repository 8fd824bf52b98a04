"""
Candidate API Routes

POST /api/candidates/{candidate_id}/approve - Extract a decision now
POST /api/candidates/{candidate_id}/dismiss - Dismiss with a reason
"""

import logging

from fastapi import APIRouter, Depends, Header

from archlog.api.deps import Services, get_services
from archlog.models.api_responses import ApproveResponse, CandidateResponse, DismissRequest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/candidates/{candidate_id}/approve", response_model=ApproveResponse)
async def approve_candidate(
    candidate_id: str,
    user_id: str = Header(..., alias="X-User-Id"),
    services: Services = Depends(get_services),
):
    """
    Run a single-item extraction for a pending or failed candidate.

    Counts against the repository's daily extraction budget.
    """
    return await services.candidates.approve_candidate(candidate_id, user_id)


@router.post("/candidates/{candidate_id}/dismiss", response_model=CandidateResponse)
async def dismiss_candidate(
    candidate_id: str,
    request: DismissRequest,
    user_id: str = Header(..., alias="X-User-Id"),
    services: Services = Depends(get_services),
):
    return await services.candidates.dismiss_candidate(
        candidate_id, request.reason, note=request.note, user_id=user_id
    )
