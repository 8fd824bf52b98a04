"""
Candidate Service

Read and act on sieve candidates: list them, approve one (single-item
extraction under the repository lock), dismiss one with a reason, and
report the sync status of a repository.
"""

import logging
from typing import List, Optional

from archlog.errors import RecordNotFoundError, SyncInProgressError, ValidationError
from archlog.models.api_responses import (
    ApproveResponse,
    BudgetReport,
    CandidateResponse,
    SyncCounts,
    SyncStatusResponse,
)
from archlog.models.records import (
    Candidate,
    CandidateStatus,
    DismissReason,
    Repo,
    SyncRunStatus,
)
from archlog.services.cost_governor import CostGovernor
from archlog.services.extraction import ExtractionService
from archlog.services.store import Store

logger = logging.getLogger(__name__)

APPROVABLE_STATUSES = (CandidateStatus.PENDING, CandidateStatus.FAILED)
DISMISSABLE_STATUSES = (CandidateStatus.PENDING, CandidateStatus.FAILED)
MAX_DISMISS_NOTE_LENGTH = 500


class CandidateService:
    def __init__(self, store: Store, extraction: ExtractionService, governor: CostGovernor):
        self.store = store
        self.extraction = extraction
        self.governor = governor

    async def _owned_repo(self, repo_id: str, user_id: Optional[str]) -> Repo:
        repo = await self.store.get_repo(repo_id)
        if user_id is not None and repo.user_id != user_id:
            raise RecordNotFoundError(f"Repository {repo_id} not found")
        return repo

    async def _owned_candidate(self, candidate_id: str, user_id: Optional[str]) -> Candidate:
        candidate = await self.store.get_candidate(candidate_id)
        repo = await self.store.get_repo(candidate.repo_id)
        if user_id is not None and repo.user_id != user_id:
            raise RecordNotFoundError(f"Candidate {candidate_id} not found")
        return candidate

    async def to_response(self, candidate: Candidate) -> CandidateResponse:
        artifact = await self.store.get_artifact(candidate.artifact_id)
        return CandidateResponse(
            id=candidate.id,
            repo_id=candidate.repo_id,
            artifact_id=candidate.artifact_id,
            status=candidate.status,
            sieve_score=candidate.sieve_score,
            score_breakdown=candidate.score_breakdown,
            title=artifact.title,
            url=artifact.url,
            author=artifact.author,
            merged_at=artifact.merged_at,
            error=candidate.error,
            dismiss_reason=candidate.dismiss_reason,
            dismiss_note=candidate.dismiss_note,
            decision_id=candidate.decision_id,
            created_at=candidate.created_at,
        )

    async def list_candidates(
        self,
        repo_id: str,
        user_id: Optional[str] = None,
        status: Optional[CandidateStatus] = None,
        limit: Optional[int] = None,
    ) -> List[CandidateResponse]:
        """Candidates of a repository, highest sieve score first."""
        await self._owned_repo(repo_id, user_id)
        candidates = await self.store.list_candidates(repo_id, status=status, limit=limit)
        return [await self.to_response(c) for c in candidates]

    async def approve_candidate(self, candidate_id: str, user_id: Optional[str] = None) -> ApproveResponse:
        """
        Extract a decision for one pending or failed candidate now.

        The repository lock is taken for the duration of the call, so an
        approval never runs alongside a sync of the same repository.

        Raises:
            ValidationError: If the candidate is already extracted or dismissed
            SyncInProgressError: If the repository is syncing
            BudgetExceededError: If today's extraction budget is used up
        """
        candidate = await self._owned_candidate(candidate_id, user_id)
        if candidate.status not in APPROVABLE_STATUSES:
            raise ValidationError(f"Candidate already {candidate.status.value}")

        repo_id = candidate.repo_id
        if not await self.store.try_begin_sync(repo_id):
            raise SyncInProgressError(f"Sync in progress for repository {repo_id}; try again later")

        try:
            await self.governor.enforce(repo_id)
            summary = await self.extraction.extract_candidates(repo_id, [candidate], user_id)
        finally:
            await self.store.end_sync(repo_id)

        updated = await self.store.get_candidate(candidate_id)
        logger.info(f"Approved candidate {candidate_id}: {updated.status.value}")
        return ApproveResponse(
            success=updated.status == CandidateStatus.EXTRACTED,
            candidate=await self.to_response(updated),
            decision_id=updated.decision_id,
            error=summary.errors[0] if summary.errors else None,
        )

    async def dismiss_candidate(
        self,
        candidate_id: str,
        reason: DismissReason,
        note: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> CandidateResponse:
        candidate = await self._owned_candidate(candidate_id, user_id)
        if candidate.status not in DISMISSABLE_STATUSES:
            raise ValidationError(f"Candidate already {candidate.status.value}")
        if note is not None and len(note) > MAX_DISMISS_NOTE_LENGTH:
            raise ValidationError(f"Dismiss note exceeds {MAX_DISMISS_NOTE_LENGTH} characters")

        updated = await self.store.update_candidate(
            candidate_id,
            status=CandidateStatus.DISMISSED,
            dismiss_reason=DismissReason(reason),
            dismiss_note=note,
        )
        logger.info(f"Dismissed candidate {candidate_id} ({updated.dismiss_reason.value})")
        return await self.to_response(updated)

    async def get_sync_status(self, repo_id: str, user_id: Optional[str] = None) -> SyncStatusResponse:
        repo = await self._owned_repo(repo_id, user_id)
        budget = await self.governor.check(repo_id)
        stats = await self.governor.cost_stats(repo_id, budget)
        pending = await self.store.list_candidates(repo_id, status=CandidateStatus.PENDING)
        operations = await self.store.list_sync_operations(repo_id)
        last = operations[-1] if operations else None

        return SyncStatusResponse(
            repo_id=repo.id,
            status=repo.sync_status,
            last_sync_at=repo.last_sync_at,
            last_run_status=last.status.value if last else None,
            cursor=repo.cursor,
            counts=SyncCounts(
                candidates=repo.candidate_count,
                decisions=repo.decision_count,
                pending_candidates=len(pending),
                fetched_last_run=last.fetched_count if last else 0,
                extracted_last_run=last.extracted_count if last else 0,
            ),
            error="; ".join(last.errors) if last and last.status == SyncRunStatus.ERROR else None,
            error_kind=last.error_kind if last else None,
            budget=BudgetReport(
                limit=budget.limit,
                used=budget.used,
                remaining=budget.remaining,
                reset_at=budget.reset_at,
                total_cost=stats.total_cost,
            ),
        )
