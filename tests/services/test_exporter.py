"""
Tests for decision export as JSON and ADR-style Markdown
"""

from datetime import timedelta

import pytest

from archlog.errors import RecordNotFoundError, ValidationError
from archlog.models.records import Decision, RawResponse
from archlog.services.exporter import DecisionExporter

from factories import NOW, make_artifact


async def add_decision(store, repo, external_id, title, created_at, alternatives=None):
    artifact, _ = await store.upsert_artifact(
        make_artifact(external_id, repo_id=repo.id, title=f"PR {external_id}")
    )
    decision = Decision(
        repo_id=repo.id,
        candidate_id=f"cand-{external_id}",
        artifact_id=artifact.id,
        title=title,
        context="Context of the decision",
        decision="What was decided",
        reasoning="Why it was decided",
        consequences="What follows from it",
        alternatives=alternatives,
        tags=["database", "migration"],
        significance=0.756,
        extracted_by="primary:gpt-4o",
        raw_response=RawResponse(provider="primary", model="gpt-4o", text="{}"),
        created_at=created_at,
    )
    stored, _ = await store.create_decision_if_absent(decision)
    return stored


@pytest.fixture
def exporter(store, clock):
    return DecisionExporter(store, clock=clock)


@pytest.mark.asyncio
async def test_json_export(store, repo, exporter):
    decision = await add_decision(store, repo, "7", "Adopt PostgreSQL", NOW - timedelta(days=2))

    exported = await exporter.export_decisions(repo.id, "json", user_id=repo.user_id)

    assert exported["repo"] == {"id": repo.id, "full_name": "acme/api"}
    assert exported["exported_at"] == NOW.isoformat()
    assert len(exported["decisions"]) == 1
    entry = exported["decisions"][0]
    assert entry["id"] == decision.id
    assert entry["title"] == "Adopt PostgreSQL"
    assert entry["tags"] == ["database", "migration"]
    assert entry["source"]["url"] == "https://github.com/acme/api/pull/7"
    assert entry["source"]["type"] == "pr"


@pytest.mark.asyncio
async def test_markdown_export_numbers_oldest_first(store, repo, exporter):
    await add_decision(store, repo, "1", "Adopt PostgreSQL", NOW - timedelta(days=5))
    await add_decision(
        store, repo, "2", "Introduce Kafka", NOW - timedelta(days=1), alternatives="Keep polling"
    )

    markdown = await exporter.export_decisions(repo.id, "markdown")

    assert markdown.startswith("# Architecture Decision Records")
    assert "Repository: acme/api" in markdown
    assert markdown.index("# 2. Introduce Kafka") < markdown.index("# 1. Adopt PostgreSQL")
    assert markdown.count("## Status") == 2
    assert markdown.count("## Alternatives Considered") == 1
    assert "**Tags:** `database`, `migration`" in markdown
    assert "- Significance: 0.76" in markdown
    assert "- Source: [PR 2](https://github.com/acme/api/pull/2)" in markdown


@pytest.mark.asyncio
async def test_empty_export(store, repo, exporter):
    exported = await exporter.export_decisions(repo.id)

    assert exported["decisions"] == []


@pytest.mark.asyncio
async def test_unsupported_format(store, repo, exporter):
    with pytest.raises(ValidationError):
        await exporter.export_decisions(repo.id, "pdf")


@pytest.mark.asyncio
async def test_other_users_repository(store, repo, exporter):
    with pytest.raises(RecordNotFoundError):
        await exporter.export_decisions(repo.id, "json", user_id="user-2")
