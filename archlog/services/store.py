"""
Record Store

The relational store is an outside collaborator; the pipeline only depends on
the capability below: upsert by unique key, atomic conditional update, atomic
add-N, and indexed reads. ``InMemoryStore`` implements it for local runs and
tests by serializing every operation behind one ``asyncio.Lock``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from archlog.errors import RecordNotFoundError
from archlog.models.records import (
    Artifact,
    Candidate,
    CandidateStatus,
    Decision,
    ExtractionCost,
    ProcessingStatus,
    Repo,
    SyncOperation,
    SyncStatus,
    can_advance,
)

logger = logging.getLogger(__name__)

# Fields a re-fetch is allowed to overwrite on an existing artifact.
ARTIFACT_MUTABLE_FIELDS = (
    "url",
    "branch",
    "title",
    "body",
    "author",
    "labels",
    "file_paths",
    "merged_at",
    "updated_at",
    "diff",
    "diff_truncated",
    "files_changed",
    "additions",
    "deletions",
)


class Store(ABC):
    """Persistence capability used by the fetcher, sieve, governor and orchestrator."""

    # Repositories

    @abstractmethod
    async def add_repo(self, repo: Repo) -> Repo: ...

    @abstractmethod
    async def get_repo(self, repo_id: str) -> Repo: ...

    @abstractmethod
    async def try_begin_sync(self, repo_id: str) -> bool:
        """``UPDATE repo SET sync_status='syncing' WHERE id=? AND sync_status='idle'``."""

    @abstractmethod
    async def end_sync(
        self,
        repo_id: str,
        cursor: Optional[str] = None,
        synced_at: Optional[datetime] = None,
    ) -> None:
        """Set the repo back to idle, optionally storing a new cursor."""

    @abstractmethod
    async def reset_budget_if_due(
        self, repo_id: str, now: datetime, next_reset: datetime
    ) -> bool:
        """Zero the daily counter if ``reset_at`` is unset or ``<= now``. True if reset."""

    @abstractmethod
    async def increment_extractions(self, repo_id: str, n: int) -> int:
        """Atomic add. Returns the new counter value."""

    @abstractmethod
    async def increment_repo_counters(
        self, repo_id: str, candidates: int = 0, decisions: int = 0
    ) -> None: ...

    # Artifacts

    @abstractmethod
    async def upsert_artifact(self, artifact: Artifact) -> Tuple[Artifact, bool]:
        """Insert or update by ``(repo_id, external_id, type)``. True if created."""

    @abstractmethod
    async def get_artifact(self, artifact_id: str) -> Artifact: ...

    @abstractmethod
    async def list_unsieved_artifacts(self, repo_id: str, limit: int) -> List[Artifact]:
        """Pending artifacts, plus sieved-in artifacts that still lack a candidate."""

    @abstractmethod
    async def advance_artifact(
        self,
        artifact_id: str,
        status: ProcessingStatus,
        sieve_score: Optional[float] = None,
    ) -> bool:
        """Move an artifact forward. Returns False (and changes nothing) on regression."""

    # Candidates

    @abstractmethod
    async def create_candidate_if_absent(self, candidate: Candidate) -> Tuple[Candidate, bool]: ...

    @abstractmethod
    async def get_candidate(self, candidate_id: str) -> Candidate: ...

    @abstractmethod
    async def list_candidates(
        self,
        repo_id: str,
        status: Optional[CandidateStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Candidate]: ...

    @abstractmethod
    async def update_candidate(self, candidate_id: str, **fields) -> Candidate: ...

    # Decisions

    @abstractmethod
    async def create_decision_if_absent(self, decision: Decision) -> Tuple[Decision, bool]: ...

    @abstractmethod
    async def list_decisions(self, repo_id: str) -> List[Decision]: ...

    # Audit ledgers

    @abstractmethod
    async def add_extraction_cost(self, cost: ExtractionCost) -> None: ...

    @abstractmethod
    async def list_extraction_costs(self, repo_id: str) -> List[ExtractionCost]: ...

    @abstractmethod
    async def add_sync_operation(self, operation: SyncOperation) -> None: ...

    @abstractmethod
    async def list_sync_operations(self, repo_id: str) -> List[SyncOperation]: ...


class InMemoryStore(Store):
    """Process-local store. Every call is atomic with respect to every other."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self.repos: Dict[str, Repo] = {}
        self.artifacts: Dict[str, Artifact] = {}
        self.artifact_keys: Dict[tuple, str] = {}
        self.candidates: Dict[str, Candidate] = {}
        self.candidate_keys: Dict[str, str] = {}
        self.candidate_by_artifact: Dict[str, str] = {}
        self.decisions: Dict[str, Decision] = {}
        self.decision_by_candidate: Dict[str, str] = {}
        self.extraction_costs: List[ExtractionCost] = []
        self.sync_operations: List[SyncOperation] = []

    def _repo(self, repo_id: str) -> Repo:
        try:
            return self.repos[repo_id]
        except KeyError:
            raise RecordNotFoundError(f"Repository {repo_id} not found") from None

    def _artifact(self, artifact_id: str) -> Artifact:
        try:
            return self.artifacts[artifact_id]
        except KeyError:
            raise RecordNotFoundError(f"Artifact {artifact_id} not found") from None

    def _candidate(self, candidate_id: str) -> Candidate:
        try:
            return self.candidates[candidate_id]
        except KeyError:
            raise RecordNotFoundError(f"Candidate {candidate_id} not found") from None

    async def add_repo(self, repo: Repo) -> Repo:
        async with self._lock:
            self.repos[repo.id] = repo.model_copy(deep=True)
            return repo.model_copy(deep=True)

    async def get_repo(self, repo_id: str) -> Repo:
        async with self._lock:
            return self._repo(repo_id).model_copy(deep=True)

    async def try_begin_sync(self, repo_id: str) -> bool:
        async with self._lock:
            repo = self._repo(repo_id)
            if repo.sync_status != SyncStatus.IDLE:
                return False
            repo.sync_status = SyncStatus.SYNCING
            return True

    async def end_sync(
        self,
        repo_id: str,
        cursor: Optional[str] = None,
        synced_at: Optional[datetime] = None,
    ) -> None:
        async with self._lock:
            repo = self._repo(repo_id)
            if cursor is not None:
                repo.cursor = cursor
            if synced_at is not None:
                repo.last_sync_at = synced_at
            repo.sync_status = SyncStatus.IDLE

    async def reset_budget_if_due(
        self, repo_id: str, now: datetime, next_reset: datetime
    ) -> bool:
        async with self._lock:
            repo = self._repo(repo_id)
            if repo.extractions_reset_at is not None and now < repo.extractions_reset_at:
                return False
            repo.extractions_today = 0
            repo.extractions_reset_at = next_reset
            return True

    async def increment_extractions(self, repo_id: str, n: int) -> int:
        async with self._lock:
            repo = self._repo(repo_id)
            repo.extractions_today += n
            return repo.extractions_today

    async def increment_repo_counters(
        self, repo_id: str, candidates: int = 0, decisions: int = 0
    ) -> None:
        async with self._lock:
            repo = self._repo(repo_id)
            repo.candidate_count += candidates
            repo.decision_count += decisions

    async def upsert_artifact(self, artifact: Artifact) -> Tuple[Artifact, bool]:
        async with self._lock:
            existing_id = self.artifact_keys.get(artifact.identity)
            if existing_id is None:
                stored = artifact.model_copy(deep=True)
                self.artifacts[stored.id] = stored
                self.artifact_keys[stored.identity] = stored.id
                return stored.model_copy(deep=True), True

            stored = self.artifacts[existing_id]
            for field in ARTIFACT_MUTABLE_FIELDS:
                setattr(stored, field, getattr(artifact, field))
            return stored.model_copy(deep=True), False

    async def get_artifact(self, artifact_id: str) -> Artifact:
        async with self._lock:
            return self._artifact(artifact_id).model_copy(deep=True)

    async def list_unsieved_artifacts(self, repo_id: str, limit: int) -> List[Artifact]:
        async with self._lock:
            found = [
                a
                for a in self.artifacts.values()
                if a.repo_id == repo_id
                and (
                    a.processing_status == ProcessingStatus.PENDING
                    or (
                        a.processing_status == ProcessingStatus.SIEVED_IN
                        and a.id not in self.candidate_by_artifact
                    )
                )
            ]
            oldest = datetime.min.replace(tzinfo=timezone.utc)
            found.sort(key=lambda a: a.authored_at or oldest, reverse=True)
            return [a.model_copy(deep=True) for a in found[:limit]]

    async def advance_artifact(
        self,
        artifact_id: str,
        status: ProcessingStatus,
        sieve_score: Optional[float] = None,
    ) -> bool:
        async with self._lock:
            artifact = self._artifact(artifact_id)
            if not can_advance(artifact.processing_status, status):
                logger.debug(
                    f"Refusing artifact {artifact_id} transition "
                    f"{artifact.processing_status.value} -> {status.value}"
                )
                return False
            artifact.processing_status = status
            if sieve_score is not None:
                artifact.sieve_score = sieve_score
            return True

    async def create_candidate_if_absent(self, candidate: Candidate) -> Tuple[Candidate, bool]:
        async with self._lock:
            existing_id = self.candidate_keys.get(candidate.dedupe_key)
            if existing_id is not None:
                return self.candidates[existing_id].model_copy(deep=True), False
            stored = candidate.model_copy(deep=True)
            self.candidates[stored.id] = stored
            self.candidate_keys[stored.dedupe_key] = stored.id
            self.candidate_by_artifact[stored.artifact_id] = stored.id
            return stored.model_copy(deep=True), True

    async def get_candidate(self, candidate_id: str) -> Candidate:
        async with self._lock:
            return self._candidate(candidate_id).model_copy(deep=True)

    async def list_candidates(
        self,
        repo_id: str,
        status: Optional[CandidateStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Candidate]:
        async with self._lock:
            found = [
                c
                for c in self.candidates.values()
                if c.repo_id == repo_id and (status is None or c.status == status)
            ]
            found.sort(key=lambda c: (-c.sieve_score, c.created_at))
            if limit is not None:
                found = found[:limit]
            return [c.model_copy(deep=True) for c in found]

    async def update_candidate(self, candidate_id: str, **fields) -> Candidate:
        async with self._lock:
            candidate = self._candidate(candidate_id)
            for name, value in fields.items():
                if not hasattr(candidate, name):
                    raise AttributeError(f"Candidate has no field {name!r}")
                setattr(candidate, name, value)
            candidate.updated_at = datetime.now(timezone.utc)
            return candidate.model_copy(deep=True)

    async def create_decision_if_absent(self, decision: Decision) -> Tuple[Decision, bool]:
        async with self._lock:
            existing_id = self.decision_by_candidate.get(decision.candidate_id)
            if existing_id is not None:
                return self.decisions[existing_id].model_copy(deep=True), False
            stored = decision.model_copy(deep=True)
            self.decisions[stored.id] = stored
            self.decision_by_candidate[stored.candidate_id] = stored.id
            return stored.model_copy(deep=True), True

    async def list_decisions(self, repo_id: str) -> List[Decision]:
        async with self._lock:
            found = [d for d in self.decisions.values() if d.repo_id == repo_id]
            found.sort(key=lambda d: d.created_at, reverse=True)
            return [d.model_copy(deep=True) for d in found]

    async def add_extraction_cost(self, cost: ExtractionCost) -> None:
        async with self._lock:
            self.extraction_costs.append(cost.model_copy(deep=True))

    async def list_extraction_costs(self, repo_id: str) -> List[ExtractionCost]:
        async with self._lock:
            return [c.model_copy(deep=True) for c in self.extraction_costs if c.repo_id == repo_id]

    async def add_sync_operation(self, operation: SyncOperation) -> None:
        async with self._lock:
            self.sync_operations.append(operation.model_copy(deep=True))

    async def list_sync_operations(self, repo_id: str) -> List[SyncOperation]:
        async with self._lock:
            return [
                op.model_copy(deep=True) for op in self.sync_operations if op.repo_id == repo_id
            ]
