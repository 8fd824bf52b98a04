from archlog.ai_core.extraction.decision_extractor import DecisionExtractor, ExtractionOutcome
from archlog.ai_core.extraction.providers import LLMProvider, ProviderKind, ProviderResponse

__all__ = [
    "DecisionExtractor",
    "ExtractionOutcome",
    "LLMProvider",
    "ProviderKind",
    "ProviderResponse",
]
