"""
Decision Extraction Module

Turns one batch of artifacts into structured decision records:
1. Build a single prompt for the batch (untrusted content wrapped in markers)
2. Call the primary provider; decode and validate strictly
3. On any primary failure, call the fallback provider exactly once
4. Both failing raises ExtractionError carrying both errors
"""

import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from archlog.ai_core.extraction.providers import LLMProvider, ProviderResponse
from archlog.ai_core.extraction.schema import BatchExtraction, DecisionExtraction
from archlog.ai_core.prompts.extraction import (
    EXTRACTION_SYSTEM_PROMPT,
    PromptArtifact,
    create_extraction_prompt,
)
from archlog.errors import ExtractionError, ProviderError

logger = logging.getLogger(__name__)


@dataclass
class ExtractionOutcome:
    """Validated result of one batch call."""

    decisions: List[DecisionExtraction]
    response: ProviderResponse
    provider: LLMProvider
    cost: float
    primary_error: Optional[ProviderError] = None
    refs: List[str] = field(default_factory=list)

    @property
    def extracted_by(self) -> str:
        return self.provider.label

    def decision_for(self, ref: str) -> Optional[DecisionExtraction]:
        for decision in self.decisions:
            if decision.artifact_ref == ref:
                return decision
        return None


def parse_response(provider: str, text: str, refs: List[str]) -> List[DecisionExtraction]:
    """
    Strictly decode provider output.

    The whole text must be one JSON object. Nothing is stripped, repaired or
    salvaged: a single bad field rejects every decision in the response.

    Raises:
        ProviderError: MALFORMED if the text is not a JSON object, SCHEMA if it
            does not validate
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProviderError(provider, ProviderError.MALFORMED, f"invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ProviderError(
            provider, ProviderError.MALFORMED, f"expected a JSON object, got {type(payload).__name__}"
        )

    try:
        batch = BatchExtraction.model_validate(payload)
        batch.check_refs(refs)
    except (PydanticValidationError, ValueError) as e:
        raise ProviderError(provider, ProviderError.SCHEMA, str(e)) from e

    return batch.decisions


class DecisionExtractor:
    """
    Extracts architectural decisions from batches of artifacts.
    """

    def __init__(self, primary: LLMProvider, fallback: LLMProvider):
        self.primary = primary
        self.fallback = fallback

    async def extract(self, artifacts: List[PromptArtifact]) -> ExtractionOutcome:
        """
        Extract decisions for one batch.

        Args:
            artifacts: the batch, each with a unique ``ref``

        Returns:
            ExtractionOutcome from whichever provider produced a valid response

        Raises:
            ExtractionError: If both the primary and the fallback fail
        """
        refs = [a.ref for a in artifacts]
        user_prompt = create_extraction_prompt(artifacts)
        logger.info(f"Extracting decisions from batch of {len(artifacts)} artifacts")

        try:
            outcome = await self._attempt(self.primary, user_prompt, refs)
            logger.info(f"{self.primary.label} returned {len(outcome.decisions)} decisions")
            return outcome
        except ProviderError as primary_error:
            logger.warning(f"Primary extraction failed, using fallback: {primary_error}")

            try:
                outcome = await self._attempt(self.fallback, user_prompt, refs)
            except ProviderError as fallback_error:
                logger.error(
                    f"Fallback extraction failed as well: {fallback_error}", exc_info=True
                )
                raise ExtractionError(primary_error, fallback_error) from fallback_error

            outcome.primary_error = primary_error
            logger.info(f"{self.fallback.label} returned {len(outcome.decisions)} decisions")
            return outcome

    async def _attempt(
        self, provider: LLMProvider, user_prompt: str, refs: List[str]
    ) -> ExtractionOutcome:
        response = await provider.complete(EXTRACTION_SYSTEM_PROMPT, user_prompt)
        decisions = parse_response(provider.kind.value, response.text, refs)
        return ExtractionOutcome(
            decisions=decisions,
            response=response,
            provider=provider,
            cost=provider.calculate_cost(response.input_tokens, response.output_tokens),
            refs=refs,
        )
