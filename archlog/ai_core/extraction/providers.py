"""
Text-Generation Provider Adapter

Wraps a langchain chat model behind a single ``complete`` call with a hard
wall-clock timeout. Two instances exist at runtime, PRIMARY and FALLBACK;
they differ only in the configured model and token rates.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from langchain_core.messages import HumanMessage, SystemMessage

from archlog.errors import ProviderError

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4


class ProviderKind(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


@dataclass
class ProviderResponse:
    text: str
    input_tokens: int
    output_tokens: int
    model: str
    provider: ProviderKind


def estimate_tokens(text: str) -> int:
    return max(len(text) // CHARS_PER_TOKEN, 1) if text else 0


def _content_text(content: Any) -> str:
    # Chat models may return a list of content blocks instead of a string
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


class LLMProvider:
    """One configured chat model plus its pricing."""

    def __init__(
        self,
        kind: ProviderKind,
        model: str,
        llm: Any,
        timeout: float = 60.0,
        input_rate: float = 0.0,
        output_rate: float = 0.0,
    ):
        """
        Args:
            kind: PRIMARY or FALLBACK
            model: model name, recorded on decisions and cost rows
            llm: anything with an async ``ainvoke(messages)``
            timeout: seconds before the call is cancelled
            input_rate: USD per 1M input tokens
            output_rate: USD per 1M output tokens
        """
        self.kind = kind
        self.model = model
        self.llm = llm
        self.timeout = timeout
        self.input_rate = input_rate
        self.output_rate = output_rate

    @property
    def label(self) -> str:
        return f"{self.kind.value}:{self.model}"

    async def complete(self, system_prompt: str, user_prompt: str) -> ProviderResponse:
        """
        Send one system/user exchange and return the raw text with token usage.

        Raises:
            ProviderError: TIMEOUT when the deadline passes, TRANSPORT for
                any failure raised by the underlying client
        """
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]

        try:
            response = await asyncio.wait_for(self.llm.ainvoke(messages), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{self.label} timed out after {self.timeout}s")
            raise ProviderError(
                self.kind.value, ProviderError.TIMEOUT, f"no response within {self.timeout}s"
            ) from None
        except Exception as e:
            logger.warning(f"{self.label} call failed: {e}")
            raise ProviderError(self.kind.value, ProviderError.TRANSPORT, str(e)) from e

        text = _content_text(response.content)
        usage: Optional[dict] = getattr(response, "usage_metadata", None)
        if usage:
            input_tokens = int(usage.get("input_tokens", 0))
            output_tokens = int(usage.get("output_tokens", 0))
        else:
            input_tokens = estimate_tokens(system_prompt) + estimate_tokens(user_prompt)
            output_tokens = estimate_tokens(text)

        return ProviderResponse(
            text=text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=self.model,
            provider=self.kind,
        )

    def calculate_cost(self, input_tokens: int, output_tokens: int) -> float:
        """USD cost of one call at this provider's rates."""
        cost = (input_tokens * self.input_rate + output_tokens * self.output_rate) / 1_000_000
        return round(cost, 6)
