"""
Repository API Routes

1. POST /api/repos - Register a repository for the caller
2. POST /api/repos/{repo_id}/sync - Start a background sync
3. GET /api/repos/{repo_id}/sync - Sync status, counts and budget
4. GET /api/repos/{repo_id}/candidates - List sieve candidates
5. GET /api/repos/{repo_id}/export - Export decisions (json or markdown)
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Response
from fastapi.responses import PlainTextResponse

from archlog.api.deps import Services, get_services
from archlog.errors import ValidationError
from archlog.models.api_responses import (
    CandidateListResponse,
    RepoCreateRequest,
    RepoResponse,
    SyncStartResponse,
    SyncStatusResponse,
)
from archlog.models.records import CandidateStatus, Repo
from archlog.services.sync_orchestrator import SYNC_STARTED

logger = logging.getLogger(__name__)
router = APIRouter()

_NAME_PART = re.compile(r"^[A-Za-z0-9_.-]+$")


def parse_full_name(repo_url: str) -> str:
    """Reduce a GitHub URL or an owner/repo string to owner/repo."""
    parts = repo_url.strip().rstrip("/").split("/")
    if len(parts) < 2:
        raise ValidationError("Invalid repository URL format")
    owner, name = parts[-2], parts[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not (_NAME_PART.match(owner) and _NAME_PART.match(name)):
        raise ValidationError(f"Invalid repository URL format: {repo_url}")
    return f"{owner}/{name}"


@router.post("/repos", response_model=RepoResponse, status_code=201)
async def register_repo(
    request: RepoCreateRequest,
    user_id: str = Header(..., alias="X-User-Id"),
    services: Services = Depends(get_services),
):
    """Track a repository for the caller. The caller's stored token is used to sync it."""
    repo = await services.store.add_repo(
        Repo(
            user_id=user_id,
            full_name=parse_full_name(request.repo_url),
            default_branch=request.default_branch,
            artifact_source=request.artifact_source,
        )
    )
    logger.info(f"Registered {repo.full_name} as {repo.id} for user {user_id}")
    return RepoResponse(**repo.model_dump(include=set(RepoResponse.model_fields)))


@router.post("/repos/{repo_id}/sync", response_model=SyncStartResponse)
async def start_sync(
    repo_id: str,
    response: Response,
    user_id: str = Header(..., alias="X-User-Id"),
    services: Services = Depends(get_services),
):
    """
    Start a sync of the repository in the background.

    Returns 202 when started and 409 when a sync is already running.
    """
    status = await services.orchestrator.start_sync(repo_id, user_id)
    response.status_code = 202 if status == SYNC_STARTED else 409
    return SyncStartResponse(status=status, repo_id=repo_id)


@router.get("/repos/{repo_id}/sync", response_model=SyncStatusResponse)
async def get_sync_status(
    repo_id: str,
    user_id: str = Header(..., alias="X-User-Id"),
    services: Services = Depends(get_services),
):
    return await services.candidates.get_sync_status(repo_id, user_id)


@router.get("/repos/{repo_id}/candidates", response_model=CandidateListResponse)
async def list_candidates(
    repo_id: str,
    status: Optional[CandidateStatus] = Query(None, description="Filter by candidate status"),
    limit: Optional[int] = Query(None, ge=1, le=500),
    user_id: str = Header(..., alias="X-User-Id"),
    services: Services = Depends(get_services),
):
    candidates = await services.candidates.list_candidates(
        repo_id, user_id=user_id, status=status, limit=limit
    )
    return CandidateListResponse(repo_id=repo_id, total=len(candidates), candidates=candidates)


@router.get("/repos/{repo_id}/export")
async def export_decisions(
    repo_id: str,
    format: str = Query("json", description="json or markdown"),
    user_id: str = Header(..., alias="X-User-Id"),
    services: Services = Depends(get_services),
):
    exported = await services.exporter.export_decisions(repo_id, format, user_id=user_id)
    if isinstance(exported, str):
        return PlainTextResponse(
            exported,
            media_type="text/markdown",
            headers={"Content-Disposition": 'attachment; filename="decisions.md"'},
        )
    return exported
