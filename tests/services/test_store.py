"""
Tests for the in-memory store: uniqueness keys, forward-only artifact status,
the conditional sync lock.
"""

import asyncio

import pytest

from archlog.errors import RecordNotFoundError
from archlog.models.records import (
    Candidate,
    Decision,
    ProcessingStatus,
    RawResponse,
    SyncStatus,
    can_advance,
    candidate_dedupe_key,
)

from factories import make_artifact


class TestCanAdvance:
    @pytest.mark.parametrize(
        "current,new,allowed",
        [
            (ProcessingStatus.PENDING, ProcessingStatus.SIEVED_IN, True),
            (ProcessingStatus.PENDING, ProcessingStatus.SIEVED_OUT, True),
            (ProcessingStatus.SIEVED_IN, ProcessingStatus.EXTRACTED, True),
            (ProcessingStatus.SIEVED_IN, ProcessingStatus.EXTRACT_FAILED, True),
            (ProcessingStatus.EXTRACT_FAILED, ProcessingStatus.EXTRACTED, True),
            (ProcessingStatus.EXTRACT_FAILED, ProcessingStatus.EXTRACT_FAILED, True),
            (ProcessingStatus.SIEVED_IN, ProcessingStatus.PENDING, False),
            (ProcessingStatus.SIEVED_IN, ProcessingStatus.SIEVED_OUT, False),
            (ProcessingStatus.EXTRACTED, ProcessingStatus.EXTRACT_FAILED, False),
            (ProcessingStatus.EXTRACTED, ProcessingStatus.EXTRACTED, False),
        ],
    )
    def test_transitions(self, current, new, allowed):
        assert can_advance(current, new) is allowed


@pytest.mark.asyncio
async def test_sync_lock_is_exclusive(store, repo):
    results = await asyncio.gather(*(store.try_begin_sync(repo.id) for _ in range(5)))
    assert results.count(True) == 1
    assert (await store.get_repo(repo.id)).sync_status == SyncStatus.SYNCING

    await store.end_sync(repo.id, cursor="pr:4")
    released = await store.get_repo(repo.id)
    assert released.sync_status == SyncStatus.IDLE
    assert released.cursor == "pr:4"
    assert await store.try_begin_sync(repo.id)


@pytest.mark.asyncio
async def test_end_sync_without_cursor_keeps_cursor(store, repo):
    await store.try_begin_sync(repo.id)
    await store.end_sync(repo.id, cursor="pr:9")
    await store.try_begin_sync(repo.id)
    await store.end_sync(repo.id)
    assert (await store.get_repo(repo.id)).cursor == "pr:9"


@pytest.mark.asyncio
async def test_upsert_artifact_by_identity(store, repo):
    first, created = await store.upsert_artifact(make_artifact("7", title="First"))
    assert created
    second, created = await store.upsert_artifact(make_artifact("7", title="Second"))
    assert not created
    assert second.id == first.id
    assert second.title == "Second"
    assert len(store.artifacts) == 1


@pytest.mark.asyncio
async def test_advance_refuses_regression(store, repo):
    artifact, _ = await store.upsert_artifact(make_artifact("1"))
    assert await store.advance_artifact(artifact.id, ProcessingStatus.SIEVED_OUT, sieve_score=0.1)
    assert not await store.advance_artifact(artifact.id, ProcessingStatus.PENDING)
    assert not await store.advance_artifact(artifact.id, ProcessingStatus.SIEVED_IN)
    assert (await store.get_artifact(artifact.id)).processing_status == ProcessingStatus.SIEVED_OUT


@pytest.mark.asyncio
async def test_unsieved_includes_sieved_in_without_candidate(store, repo):
    pending, _ = await store.upsert_artifact(make_artifact("1"))
    orphan, _ = await store.upsert_artifact(make_artifact("2"))
    done, _ = await store.upsert_artifact(make_artifact("3"))
    await store.advance_artifact(orphan.id, ProcessingStatus.SIEVED_IN)
    await store.advance_artifact(done.id, ProcessingStatus.SIEVED_IN)
    await store.create_candidate_if_absent(
        Candidate(
            repo_id=repo.id,
            artifact_id=done.id,
            dedupe_key=candidate_dedupe_key(done),
            sieve_score=0.5,
        )
    )

    found = await store.list_unsieved_artifacts(repo.id, 100)
    assert {a.id for a in found} == {pending.id, orphan.id}


@pytest.mark.asyncio
async def test_candidate_create_if_absent(store, repo):
    artifact, _ = await store.upsert_artifact(make_artifact("1"))
    key = candidate_dedupe_key(artifact)
    assert key == f"{repo.id}:pr:1"

    first, created = await store.create_candidate_if_absent(
        Candidate(repo_id=repo.id, artifact_id=artifact.id, dedupe_key=key, sieve_score=0.5)
    )
    again, created_again = await store.create_candidate_if_absent(
        Candidate(repo_id=repo.id, artifact_id=artifact.id, dedupe_key=key, sieve_score=0.9)
    )
    assert created and not created_again
    assert again.id == first.id
    assert again.sieve_score == 0.5


@pytest.mark.asyncio
async def test_one_decision_per_candidate(store, repo):
    def decision(title):
        return Decision(
            repo_id=repo.id,
            candidate_id="cand-1",
            artifact_id="art-1",
            title=title,
            context="c",
            decision="d",
            reasoning="r",
            consequences="q",
            significance=0.5,
            extracted_by="primary:gpt-4o",
            raw_response=RawResponse(provider="primary", model="gpt-4o", text="{}"),
        )

    first, created = await store.create_decision_if_absent(decision("One"))
    second, created_again = await store.create_decision_if_absent(decision("Two"))
    assert created and not created_again
    assert second.id == first.id
    assert second.title == "One"


@pytest.mark.asyncio
async def test_missing_rows_raise(store):
    with pytest.raises(RecordNotFoundError):
        await store.get_repo("nope")
    with pytest.raises(RecordNotFoundError):
        await store.update_candidate("nope", status="dismissed")


@pytest.mark.asyncio
async def test_returned_records_are_copies(store, repo):
    fetched = await store.get_repo(repo.id)
    fetched.extractions_today = 99
    assert (await store.get_repo(repo.id)).extractions_today == 0
