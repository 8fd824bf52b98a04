"""
Sieve stage: score unsieved artifacts and create candidates for the passes.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from archlog.models.records import Candidate, ProcessingStatus, candidate_dedupe_key
from archlog.services.store import Store
from archlog.sieve.scorer import SIEVE_THRESHOLD, score

logger = logging.getLogger(__name__)


@dataclass
class SieveSummary:
    sieved: int = 0
    sieved_in: int = 0
    sieved_out: int = 0
    candidates_created: int = 0
    errors: List[str] = field(default_factory=list)


async def sieve_artifacts(
    store: Store,
    repo_id: str,
    user_id: Optional[str] = None,
    threshold: float = SIEVE_THRESHOLD,
    limit: int = 100,
) -> SieveSummary:
    """
    Score every artifact of ``repo_id`` that has not been sieved yet.

    Passing artifacts get a pending candidate (create-if-absent, so reruns
    never duplicate) and move to ``sieved_in``; the rest move to the terminal
    ``sieved_out``. A failure on one artifact is recorded and the loop goes on.
    """
    summary = SieveSummary()
    artifacts = await store.list_unsieved_artifacts(repo_id, limit)

    for artifact in artifacts:
        try:
            result = score(artifact)
            summary.sieved += 1

            if result.total >= threshold:
                candidate, created = await store.create_candidate_if_absent(
                    Candidate(
                        repo_id=repo_id,
                        artifact_id=artifact.id,
                        user_id=user_id,
                        dedupe_key=candidate_dedupe_key(artifact),
                        sieve_score=result.total,
                        score_breakdown=result.to_dict(),
                    )
                )
                if created:
                    summary.candidates_created += 1
                    await store.increment_repo_counters(repo_id, candidates=1)
                await store.advance_artifact(
                    artifact.id, ProcessingStatus.SIEVED_IN, sieve_score=result.total
                )
                summary.sieved_in += 1
                logger.debug(f"Sieved in {artifact.title!r}: {result.reasoning}")
            else:
                await store.advance_artifact(
                    artifact.id, ProcessingStatus.SIEVED_OUT, sieve_score=result.total
                )
                summary.sieved_out += 1
        except Exception as e:
            logger.error(f"Failed to sieve artifact {artifact.id}: {e}", exc_info=True)
            summary.errors.append(f"Failed to sieve artifact {artifact.id}: {e}")

    logger.info(
        f"Sieve for repo {repo_id}: {summary.sieved_in} in, {summary.sieved_out} out, "
        f"{summary.candidates_created} new candidates"
    )
    return summary
