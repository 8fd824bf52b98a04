# Shared data models
from archlog.models.records import (
    Artifact,
    ArtifactSource,
    ArtifactType,
    Candidate,
    CandidateStatus,
    Decision,
    DismissReason,
    ExtractionCost,
    ProcessingStatus,
    Repo,
    SyncOperation,
    SyncRunStatus,
    SyncStatus,
)

__all__ = [
    "Artifact",
    "ArtifactSource",
    "ArtifactType",
    "Candidate",
    "CandidateStatus",
    "Decision",
    "DismissReason",
    "ExtractionCost",
    "ProcessingStatus",
    "Repo",
    "SyncOperation",
    "SyncRunStatus",
    "SyncStatus",
]
