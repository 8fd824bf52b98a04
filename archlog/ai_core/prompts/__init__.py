"""Prompts package."""

from archlog.ai_core.prompts.extraction import (
    EXTRACTION_SYSTEM_PROMPT,
    EXTRACTION_USER_PROMPT_TEMPLATE,
    PromptArtifact,
    create_extraction_prompt,
)

__all__ = [
    "EXTRACTION_SYSTEM_PROMPT",
    "EXTRACTION_USER_PROMPT_TEMPLATE",
    "PromptArtifact",
    "create_extraction_prompt",
]
