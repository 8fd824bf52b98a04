"""
Tests for decision extraction: strict decoding, primary/fallback behaviour,
timeouts and cost accounting.
"""

import json

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from archlog.ai_core.extraction.decision_extractor import parse_response
from archlog.ai_core.extraction.providers import LLMProvider, ProviderKind
from archlog.ai_core.prompts.extraction import EXTRACTION_SYSTEM_PROMPT, PromptArtifact
from archlog.errors import ExtractionError, ProviderError

from factories import (
    decision_payload,
    fake_llm,
    hanging_llm,
    make_extractor,
    response_text,
)


@pytest.fixture
def batch():
    return [
        PromptArtifact(ref="A1", title="Migrate to PostgreSQL", body="Because JSONB", diff="+pg"),
        PromptArtifact(ref="A2", title="Rename a variable"),
    ]


class TestParseResponse:
    def test_valid_response(self):
        decisions = parse_response("primary", response_text(decision_payload("A1")), ["A1", "A2"])
        assert len(decisions) == 1
        assert decisions[0].artifact_ref == "A1"
        assert decisions[0].tags == ["database", "migration"]

    def test_empty_decisions_is_valid(self):
        assert parse_response("primary", '{"decisions": []}', ["A1"]) == []

    @pytest.mark.parametrize(
        "text",
        [
            "not json at all",
            '```json\n{"decisions": []}\n```',
            'Here you go: {"decisions": []}',
            "[]",
        ],
    )
    def test_malformed(self, text):
        with pytest.raises(ProviderError) as exc_info:
            parse_response("primary", text, ["A1"])
        assert exc_info.value.failure == ProviderError.MALFORMED

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": "Too short"},
            {"title": "<b>OK</b><i></i><u></u>"},
            {"context": "<div></div>" * 10 + "tiny"},
            {"title": 1234567890123},
            {"context": "tiny"},
            {"tags": []},
            {"tags": ["a", "b", "c", "d", "e", "f"]},
            {"significance": 1.5},
            {"significance": "high"},
            {"confidence": 0.9},
            {"artifact_ref": "A9"},
        ],
    )
    def test_schema_violation_rejects_whole_response(self, overrides):
        text = response_text(decision_payload("A1"), decision_payload("A2", **overrides))
        with pytest.raises(ProviderError) as exc_info:
            parse_response("primary", text, ["A1", "A2"])
        assert exc_info.value.failure == ProviderError.SCHEMA

    def test_duplicate_refs_rejected(self):
        text = response_text(decision_payload("A1"), decision_payload("A1"))
        with pytest.raises(ProviderError):
            parse_response("primary", text, ["A1"])

    def test_unknown_top_level_field_rejected(self):
        text = json.dumps({"decisions": [], "note": "extra"})
        with pytest.raises(ProviderError):
            parse_response("primary", text, ["A1"])

    def test_markup_is_stripped_from_output(self):
        payload = decision_payload("A1", title="<b>Adopt PostgreSQL</b> as primary store<script>x</script>")
        decisions = parse_response("primary", response_text(payload), ["A1"])
        assert decisions[0].title == "Adopt PostgreSQL as primary store"

    def test_integer_significance_accepted(self):
        decisions = parse_response("primary", response_text(decision_payload("A1", significance=1)), ["A1"])
        assert decisions[0].significance == 1.0


class TestDecisionExtractor:
    @pytest.mark.asyncio
    async def test_primary_success(self, batch):
        primary = fake_llm(response_text(decision_payload("A1")))
        fallback = fake_llm()
        extractor = make_extractor(primary, fallback)

        outcome = await extractor.extract(batch)

        assert outcome.provider.kind == ProviderKind.PRIMARY
        assert outcome.extracted_by == "primary:gpt-4o"
        assert outcome.decision_for("A1") is not None
        assert outcome.decision_for("A2") is None
        assert outcome.response.input_tokens == 1200
        assert outcome.cost == pytest.approx((1200 * 2.5 + 300 * 10.0) / 1_000_000)
        fallback.ainvoke.assert_not_called()

        messages = primary.ainvoke.call_args.args[0]
        assert isinstance(messages[0], SystemMessage)
        assert messages[0].content == EXTRACTION_SYSTEM_PROMPT
        assert isinstance(messages[1], HumanMessage)
        assert '<untrusted_artifact ref="A1">' in messages[1].content
        assert '<untrusted_artifact ref="A2">' in messages[1].content

    @pytest.mark.asyncio
    async def test_primary_timeout_calls_fallback_once(self, batch):
        primary = hanging_llm()
        fallback = fake_llm(response_text(decision_payload("A1")))
        extractor = make_extractor(primary, fallback, timeout=0.05)

        outcome = await extractor.extract(batch)

        assert outcome.provider.kind == ProviderKind.FALLBACK
        assert outcome.primary_error.failure == ProviderError.TIMEOUT
        assert fallback.ainvoke.await_count == 1

    @pytest.mark.asyncio
    async def test_malformed_primary_falls_back(self, batch):
        primary = fake_llm("I think A1 is a decision.")
        fallback = fake_llm(response_text())
        extractor = make_extractor(primary, fallback)

        outcome = await extractor.extract(batch)

        assert outcome.extracted_by == "fallback:gpt-4o-mini"
        assert outcome.decisions == []
        assert outcome.primary_error.failure == ProviderError.MALFORMED

    @pytest.mark.asyncio
    async def test_both_fail(self, batch):
        primary = fake_llm(ConnectionError("proxy unreachable"))
        fallback = fake_llm(response_text(decision_payload("A1", title="short")))
        extractor = make_extractor(primary, fallback)

        with pytest.raises(ExtractionError) as exc_info:
            await extractor.extract(batch)

        error = exc_info.value
        assert error.primary_error.failure == ProviderError.TRANSPORT
        assert error.fallback_error.failure == ProviderError.SCHEMA
        assert "proxy unreachable" in str(error)
        assert "fallback" in str(error)
        assert primary.ainvoke.await_count == 1
        assert fallback.ainvoke.await_count == 1


class TestProvider:
    @pytest.mark.asyncio
    async def test_estimates_tokens_without_usage_metadata(self):
        llm = fake_llm(AIMessage(content="x" * 400))
        provider = LLMProvider(ProviderKind.PRIMARY, "gpt-4o", llm)

        response = await provider.complete("s" * 40, "u" * 80)

        assert response.input_tokens == 30
        assert response.output_tokens == 100

    @pytest.mark.asyncio
    async def test_content_blocks_are_joined(self):
        llm = fake_llm(AIMessage(content=[{"type": "text", "text": "{\"decisions\""}, {"type": "text", "text": ": []}"}]))
        provider = LLMProvider(ProviderKind.FALLBACK, "gpt-4o-mini", llm)

        response = await provider.complete("s", "u")

        assert response.text == '{"decisions": []}'

    def test_calculate_cost(self):
        provider = LLMProvider(ProviderKind.FALLBACK, "gpt-4o-mini", None, input_rate=0.15, output_rate=0.6)
        assert provider.calculate_cost(1_000_000, 500_000) == pytest.approx(0.45)
