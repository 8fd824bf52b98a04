"""
Builds the primary and fallback providers on the SAP gen_ai_hub proxy.
"""

import logging
from typing import Optional

from gen_ai_hub.proxy.core.proxy_clients import get_proxy_client
from gen_ai_hub.proxy.langchain.openai import ChatOpenAI

from archlog.ai_core.extraction.decision_extractor import DecisionExtractor
from archlog.ai_core.extraction.providers import LLMProvider, ProviderKind
from archlog.config import Settings, get_settings

logger = logging.getLogger(__name__)


def _chat_model(model: str, settings: Settings, proxy_client) -> ChatOpenAI:
    return ChatOpenAI(
        proxy_model_name=model,
        proxy_client=proxy_client,
        temperature=settings.temperature,
        max_tokens=settings.max_output_tokens,
    )


def create_decision_extractor(settings: Optional[Settings] = None) -> DecisionExtractor:
    """Create a DecisionExtractor backed by the configured models."""
    settings = settings or get_settings()
    proxy_client = get_proxy_client("gen-ai-hub")

    primary = LLMProvider(
        kind=ProviderKind.PRIMARY,
        model=settings.primary_model,
        llm=_chat_model(settings.primary_model, settings, proxy_client),
        timeout=settings.provider_timeout_seconds,
        input_rate=settings.primary_input_rate,
        output_rate=settings.primary_output_rate,
    )
    fallback = LLMProvider(
        kind=ProviderKind.FALLBACK,
        model=settings.fallback_model,
        llm=_chat_model(settings.fallback_model, settings, proxy_client),
        timeout=settings.provider_timeout_seconds,
        input_rate=settings.fallback_input_rate,
        output_rate=settings.fallback_output_rate,
    )
    logger.info(f"Decision extractor using {primary.label} with fallback {fallback.label}")
    return DecisionExtractor(primary, fallback)
