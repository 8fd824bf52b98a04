"""
Decision Extraction Schema

Strict models for provider output. A response either validates as a whole or
is rejected as a whole; nothing from a failing response is kept.
"""

import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_SCRIPT_TAGS = re.compile(r"<script[\s\S]*?>[\s\S]*?</script>", re.IGNORECASE)
_HTML_TAGS = re.compile(r"</?[^>]+(>|$)")


def sanitize_llm_text(value: str) -> str:
    """Strip markup from model output before it is stored."""
    value = _SCRIPT_TAGS.sub("", value)
    value = _HTML_TAGS.sub("", value)
    return value.strip()


class DecisionExtraction(BaseModel):
    """One architectural decision, as returned by the model."""

    model_config = ConfigDict(extra="forbid", strict=True)

    artifact_ref: str = Field(..., min_length=1, max_length=10, description="Batch item reference, e.g. 'A1'")
    title: str = Field(..., min_length=10, max_length=200, description="Brief title of the decision")
    context: str = Field(
        ..., min_length=50, max_length=2000, description="What problem or situation led to this decision"
    )
    decision: str = Field(..., min_length=50, max_length=2000, description="What was decided")
    reasoning: str = Field(..., min_length=50, max_length=2000, description="Why this approach was chosen")
    consequences: str = Field(
        ..., min_length=50, max_length=2000, description="Implications and trade-offs"
    )
    alternatives: Optional[str] = Field(
        None, max_length=2000, description="Other options that were considered"
    )
    tags: List[str] = Field(..., min_length=1, max_length=5, description="1-5 category tags")
    significance: float = Field(..., ge=0.0, le=1.0, description="Impact, 0.0-1.0")

    @field_validator("significance", mode="before")
    @classmethod
    def int_significance(cls, value):
        # strict mode rejects 0/1 given as JSON integers
        if isinstance(value, int) and not isinstance(value, bool):
            return float(value)
        return value

    @field_validator(
        "title", "context", "decision", "reasoning", "consequences", "alternatives", mode="before"
    )
    @classmethod
    def strip_markup(cls, value):
        # runs ahead of the length bounds
        if isinstance(value, str):
            return sanitize_llm_text(value)
        return value

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, tags: List[str]) -> List[str]:
        normalized = [sanitize_llm_text(tag).lower() for tag in tags]
        if any(not tag or len(tag) > 50 for tag in normalized):
            raise ValueError("tags must be non-empty and at most 50 characters")
        return normalized


class BatchExtraction(BaseModel):
    """The whole response for one batch."""

    model_config = ConfigDict(extra="forbid", strict=True)

    decisions: List[DecisionExtraction]

    @model_validator(mode="after")
    def unique_refs(self) -> "BatchExtraction":
        refs = [d.artifact_ref for d in self.decisions]
        if len(refs) != len(set(refs)):
            raise ValueError("artifact_ref values must be unique")
        return self

    def check_refs(self, allowed: List[str]) -> None:
        """Raise ValueError if a decision points at an artifact outside the batch."""
        unknown = sorted({d.artifact_ref for d in self.decisions} - set(allowed))
        if unknown:
            raise ValueError(f"unknown artifact_ref values: {', '.join(unknown)}")
