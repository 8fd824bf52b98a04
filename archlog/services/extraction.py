"""
Extraction Service

Runs pending candidates through the DecisionExtractor in batches and
persists the outcome: decisions, candidate and artifact status, cost ledger
rows and repository counters.

Every batch passes the Cost Governor first. Once the daily budget is gone
the remaining candidates stay pending and the summary carries
``BudgetExceeded`` so the caller can report when extraction resumes.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from archlog.ai_core.extraction.decision_extractor import DecisionExtractor, ExtractionOutcome
from archlog.ai_core.prompts.extraction import PromptArtifact
from archlog.errors import ExtractionError
from archlog.models.records import (
    Artifact,
    Candidate,
    CandidateStatus,
    Decision,
    DismissReason,
    ExtractionCost,
    ProcessingStatus,
    RawResponse,
)
from archlog.services.cost_governor import EXTRACTION_BATCH_SIZE, CostGovernor
from archlog.services.store import Store

logger = logging.getLogger(__name__)


@dataclass
class BudgetExceeded:
    """Extraction stopped early; ``deferred`` candidates wait for ``reset_at``."""

    reset_at: datetime
    deferred: int


@dataclass
class ExtractionSummary:
    attempted: int = 0
    extracted: int = 0
    dismissed: int = 0
    failed: int = 0
    batches: int = 0
    total_cost: float = 0.0
    decision_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    budget_exceeded: Optional[BudgetExceeded] = None


def _chunks(items: List[Candidate], size: int) -> List[List[Candidate]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class ExtractionService:
    """Batches candidates, calls the extractor and records the results."""

    def __init__(
        self,
        store: Store,
        extractor: DecisionExtractor,
        governor: CostGovernor,
        batch_size: int = EXTRACTION_BATCH_SIZE,
    ):
        self.store = store
        self.extractor = extractor
        self.governor = governor
        self.batch_size = batch_size

    async def extract_pending(
        self, repo_id: str, user_id: Optional[str] = None, limit: Optional[int] = None
    ) -> ExtractionSummary:
        """Extract every pending candidate of the repository, best score first."""
        candidates = await self.store.list_candidates(
            repo_id, status=CandidateStatus.PENDING, limit=limit
        )
        return await self.extract_candidates(repo_id, candidates, user_id)

    async def extract_candidates(
        self, repo_id: str, candidates: List[Candidate], user_id: Optional[str] = None
    ) -> ExtractionSummary:
        summary = ExtractionSummary()
        if not candidates:
            return summary

        batches = _chunks(candidates, self.batch_size)
        for index, batch in enumerate(batches):
            status = await self.governor.check(repo_id)
            if not status.allowed:
                deferred = sum(len(b) for b in batches[index:])
                summary.budget_exceeded = BudgetExceeded(reset_at=status.reset_at, deferred=deferred)
                logger.info(
                    f"Extraction budget exhausted for repo {repo_id}; "
                    f"{deferred} candidate(s) deferred until {status.reset_at.isoformat()}"
                )
                break

            await self.governor.increment(repo_id, 1)
            summary.batches += 1
            await self._process_batch(repo_id, batch, user_id, summary)

        logger.info(
            f"Extraction for repo {repo_id}: {summary.extracted} extracted, "
            f"{summary.dismissed} dismissed, {summary.failed} failed in {summary.batches} call(s)"
        )
        return summary

    async def _process_batch(
        self,
        repo_id: str,
        batch: List[Candidate],
        user_id: Optional[str],
        summary: ExtractionSummary,
    ) -> None:
        summary.attempted += len(batch)
        artifacts: List[Artifact] = []
        for candidate in batch:
            artifacts.append(await self.store.get_artifact(candidate.artifact_id))

        prompt_artifacts = [
            PromptArtifact(
                ref=f"A{i}",
                title=artifact.title,
                body=artifact.body,
                diff=artifact.diff,
                author=artifact.author,
                date=artifact.merged_at or artifact.authored_at,
            )
            for i, artifact in enumerate(artifacts, 1)
        ]

        try:
            outcome = await self.extractor.extract(prompt_artifacts)
        except ExtractionError as e:
            await self._mark_failed(batch, str(e), summary)
            return

        await self.store.add_extraction_cost(
            ExtractionCost(
                repo_id=repo_id,
                user_id=user_id,
                provider=outcome.provider.kind.value,
                model=outcome.response.model,
                input_tokens=outcome.response.input_tokens,
                output_tokens=outcome.response.output_tokens,
                total_cost=outcome.cost,
                batch_size=len(batch),
                candidate_ids=[c.id for c in batch],
            )
        )
        summary.total_cost = round(summary.total_cost + outcome.cost, 6)

        for prompt_artifact, candidate in zip(prompt_artifacts, batch):
            try:
                await self._apply(repo_id, candidate, prompt_artifact.ref, outcome, summary)
            except Exception as e:
                logger.error(f"Failed to record extraction for candidate {candidate.id}: {e}", exc_info=True)
                summary.errors.append(f"Failed to record extraction for candidate {candidate.id}: {e}")

    async def _apply(
        self,
        repo_id: str,
        candidate: Candidate,
        ref: str,
        outcome: ExtractionOutcome,
        summary: ExtractionSummary,
    ) -> None:
        extracted = outcome.decision_for(ref)
        if extracted is None:
            await self.store.update_candidate(
                candidate.id,
                status=CandidateStatus.DISMISSED,
                dismiss_reason=DismissReason.NOT_DECISION,
                dismiss_note=f"Not identified as a decision by {outcome.extracted_by}",
                error=None,
            )
            await self.store.advance_artifact(candidate.artifact_id, ProcessingStatus.EXTRACTED)
            summary.dismissed += 1
            return

        decision, created = await self.store.create_decision_if_absent(
            Decision(
                repo_id=repo_id,
                candidate_id=candidate.id,
                artifact_id=candidate.artifact_id,
                title=extracted.title,
                context=extracted.context,
                decision=extracted.decision,
                reasoning=extracted.reasoning,
                consequences=extracted.consequences,
                alternatives=extracted.alternatives,
                tags=extracted.tags,
                significance=extracted.significance,
                extracted_by=outcome.extracted_by,
                raw_response=RawResponse(
                    provider=outcome.provider.kind.value,
                    model=outcome.response.model,
                    text=outcome.response.text,
                ),
            )
        )
        if created:
            await self.store.increment_repo_counters(repo_id, decisions=1)

        await self.store.update_candidate(
            candidate.id,
            status=CandidateStatus.EXTRACTED,
            decision_id=decision.id,
            error=None,
        )
        await self.store.advance_artifact(candidate.artifact_id, ProcessingStatus.EXTRACTED)
        summary.extracted += 1
        summary.decision_ids.append(decision.id)

    async def _mark_failed(
        self, batch: List[Candidate], error: str, summary: ExtractionSummary
    ) -> None:
        logger.warning(f"Batch of {len(batch)} candidate(s) failed extraction: {error}")
        for candidate in batch:
            await self.store.update_candidate(
                candidate.id, status=CandidateStatus.FAILED, error=error
            )
            await self.store.advance_artifact(candidate.artifact_id, ProcessingStatus.EXTRACT_FAILED)
        summary.failed += len(batch)
        summary.errors.append(error)
