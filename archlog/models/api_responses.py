"""
API Response Models

Pydantic models for consistent API response structures.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from archlog.models.records import ArtifactSource, CandidateStatus, DismissReason, SyncStatus


class GitHubConnectRequest(BaseModel):
    """Token sent by the UI, stored for the user in the X-User-Id header."""

    token: str = Field(..., min_length=1, description="Personal access token (ghp_... or github_pat_...)")


class GitHubConnectResponse(BaseModel):
    success: bool
    message: str


class RepoCreateRequest(BaseModel):
    """Body of POST /api/repos."""

    repo_url: str = Field(..., description="https://github.com/owner/repo or owner/repo")
    default_branch: str = Field("main", min_length=1)
    artifact_source: ArtifactSource = ArtifactSource.PULL_REQUESTS


class RepoResponse(BaseModel):
    id: str
    full_name: str
    default_branch: str
    artifact_source: ArtifactSource
    sync_status: SyncStatus
    cursor: Optional[str] = None
    last_sync_at: Optional[datetime] = None


class SyncStartResponse(BaseModel):
    """Response for POST /api/repos/{id}/sync."""

    status: str = Field(..., description="started or already_running")
    repo_id: str


class BudgetReport(BaseModel):
    """Today's extraction budget of one repository."""

    limit: int = Field(..., description="Provider calls allowed per UTC day")
    used: int
    remaining: int
    reset_at: Optional[datetime] = None
    total_cost: float = Field(0.0, description="USD spent on extraction, all time")


class SyncCounts(BaseModel):
    candidates: int = 0
    decisions: int = 0
    pending_candidates: int = 0
    fetched_last_run: int = 0
    extracted_last_run: int = 0


class SyncStatusResponse(BaseModel):
    """
    Response for GET /api/repos/{id}/sync.
    ``error`` is the message of the last run when it ended in error.
    """

    repo_id: str
    status: SyncStatus
    last_sync_at: Optional[datetime] = None
    last_run_status: Optional[str] = None
    cursor: Optional[str] = None
    counts: SyncCounts
    error: Optional[str] = None
    error_kind: Optional[str] = None
    budget: BudgetReport


class CandidateResponse(BaseModel):
    """One sieve candidate together with the artifact it came from."""

    id: str
    repo_id: str
    artifact_id: str
    status: CandidateStatus
    sieve_score: float
    score_breakdown: Dict[str, Any] = Field(default_factory=dict)
    title: Optional[str] = None
    url: Optional[str] = None
    author: Optional[str] = None
    merged_at: Optional[datetime] = None
    error: Optional[str] = None
    dismiss_reason: Optional[DismissReason] = None
    dismiss_note: Optional[str] = None
    decision_id: Optional[str] = None
    created_at: datetime


class CandidateListResponse(BaseModel):
    repo_id: str
    total: int
    candidates: List[CandidateResponse]


class ApproveResponse(BaseModel):
    """Response for POST /api/candidates/{id}/approve."""

    success: bool
    candidate: CandidateResponse
    decision_id: Optional[str] = None
    error: Optional[str] = None


class DismissRequest(BaseModel):
    reason: DismissReason
    note: Optional[str] = Field(None, max_length=500)


class ErrorResponse(BaseModel):
    """Body of every error returned by the API."""

    error: str = Field(..., description="Error kind, e.g. not_found or budget_exceeded")
    message: str
    details: Optional[Dict[str, Any]] = None
