"""
Persistent Record Models

Rows kept by the store: repositories, fetched artifacts, sieve candidates,
extracted decisions and the two append-only audit ledgers.
"""

from datetime import datetime, timezone
from typing import List, Optional, Dict, Any
from enum import Enum
from uuid import uuid4
from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncStatus(str, Enum):
    """Per-repository lock state."""

    IDLE = "idle"
    SYNCING = "syncing"


class ArtifactSource(str, Enum):
    """Which part of the history a repository is mined from."""

    PULL_REQUESTS = "pull_requests"
    COMMITS = "commits"


class ArtifactType(str, Enum):
    PR = "pr"
    COMMIT = "commit"


class ProcessingStatus(str, Enum):
    """Artifact pipeline position. Only ever moves forward."""

    PENDING = "pending"
    SIEVED_IN = "sieved_in"
    SIEVED_OUT = "sieved_out"
    EXTRACT_FAILED = "extract_failed"
    EXTRACTED = "extracted"


PROCESSING_RANK = {
    ProcessingStatus.PENDING: 0,
    ProcessingStatus.SIEVED_IN: 1,
    ProcessingStatus.SIEVED_OUT: 1,
    ProcessingStatus.EXTRACT_FAILED: 2,
    ProcessingStatus.EXTRACTED: 3,
}


def can_advance(current: ProcessingStatus, new: ProcessingStatus) -> bool:
    """True if moving an artifact from ``current`` to ``new`` is forward-only."""
    if current == new:
        return current == ProcessingStatus.EXTRACT_FAILED
    return PROCESSING_RANK[new] > PROCESSING_RANK[current]


class CandidateStatus(str, Enum):
    PENDING = "pending"
    EXTRACTED = "extracted"
    DISMISSED = "dismissed"
    FAILED = "failed"


class DismissReason(str, Enum):
    NOT_DECISION = "not_decision"
    TOO_MINOR = "too_minor"
    DUPLICATE = "duplicate"
    INCORRECT = "incorrect"
    OTHER = "other"


class SyncRunStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


class Repo(BaseModel):
    """A tracked repository."""

    id: str = Field(default_factory=_new_id)
    user_id: str = Field(..., description="Owner; the vault token of this user is used")
    full_name: str = Field(..., description="owner/name on the code host")
    default_branch: str = "main"
    artifact_source: ArtifactSource = ArtifactSource.PULL_REQUESTS

    cursor: Optional[str] = Field(None, description="Opaque incremental-sync cursor")
    sync_status: SyncStatus = SyncStatus.IDLE
    last_sync_at: Optional[datetime] = None

    extractions_today: int = 0
    extractions_reset_at: Optional[datetime] = None

    candidate_count: int = 0
    decision_count: int = 0


class Artifact(BaseModel):
    """A fetched pull request or commit."""

    id: str = Field(default_factory=_new_id)
    repo_id: str
    external_id: str = Field(..., description="PR number or commit SHA")
    type: ArtifactType

    url: str = ""
    branch: Optional[str] = None
    title: str
    body: Optional[str] = None
    author: str = "unknown"
    labels: List[str] = Field(default_factory=list)
    file_paths: List[str] = Field(default_factory=list)

    authored_at: Optional[datetime] = None
    merged_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    diff: Optional[str] = Field(None, description="Diff text, truncated to the size cap")
    diff_truncated: bool = False
    files_changed: int = 0
    additions: int = 0
    deletions: int = 0

    sieve_score: Optional[float] = None
    processing_status: ProcessingStatus = ProcessingStatus.PENDING

    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def identity(self) -> tuple:
        return (self.repo_id, self.external_id, self.type.value)

    @property
    def lines_changed(self) -> int:
        return self.additions + self.deletions


class Candidate(BaseModel):
    """An artifact that passed the sieve."""

    id: str = Field(default_factory=_new_id)
    repo_id: str
    artifact_id: str
    user_id: Optional[str] = None
    dedupe_key: str = Field(..., description="repo:type:external_id of the artifact")

    sieve_score: float = Field(..., ge=0.0, le=1.0)
    score_breakdown: Dict[str, Any] = Field(default_factory=dict)

    status: CandidateStatus = CandidateStatus.PENDING
    error: Optional[str] = None
    dismiss_reason: Optional[DismissReason] = None
    dismiss_note: Optional[str] = None
    decision_id: Optional[str] = None

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


def candidate_dedupe_key(artifact: Artifact) -> str:
    return f"{artifact.repo_id}:{artifact.type.value}:{artifact.external_id}"


class RawResponse(BaseModel):
    """Provider output kept verbatim for audit. Never edited after creation."""

    model_config = ConfigDict(frozen=True)

    provider: str
    model: str
    text: str


class Decision(BaseModel):
    """Structured decision record produced by a successful extraction."""

    id: str = Field(default_factory=_new_id)
    repo_id: str
    candidate_id: str
    artifact_id: str

    title: str
    context: str
    decision: str
    reasoning: str
    consequences: str
    alternatives: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    significance: float = Field(..., ge=0.0, le=1.0)

    extracted_by: str = Field(..., description="provider kind and model")
    raw_response: RawResponse

    created_at: datetime = Field(default_factory=_utcnow)


class ExtractionCost(BaseModel):
    """Append-only cost ledger entry, one per provider batch."""

    id: str = Field(default_factory=_new_id)
    repo_id: str
    user_id: Optional[str] = None
    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    total_cost: float
    batch_size: int
    candidate_ids: List[str] = Field(default_factory=list)
    extracted_at: datetime = Field(default_factory=_utcnow)


class SyncOperation(BaseModel):
    """Append-only audit record of one orchestrator run."""

    id: str = Field(default_factory=_new_id)
    repo_id: str
    user_id: Optional[str] = None
    status: SyncRunStatus

    fetched_count: int = 0
    sieved_count: int = 0
    candidates_created: int = 0
    extracted_count: int = 0
    failed_count: int = 0

    errors: List[str] = Field(default_factory=list)
    error_kind: Optional[str] = None
    budget_exceeded_until: Optional[datetime] = None

    start_cursor: Optional[str] = None
    end_cursor: Optional[str] = None

    started_at: datetime
    completed_at: datetime = Field(default_factory=_utcnow)
