"""
Sync Orchestrator Service

Runs the full pipeline for one repository:
1. Acquire the repository lock (idle -> syncing, conditional update)
2. Fetch new artifacts from GitHub with the owner's token
3. Sieve them into candidates
4. Extract pending candidates under the Cost Governor (when enabled)
5. Record a SyncOperation, advance the cursor and release the lock

The lock is always released, whatever the pipeline raised.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Set

from archlog.config import Settings, get_settings
from archlog.errors import RecordNotFoundError, SyncInProgressError
from archlog.integrations.github.client import GitHubClient
from archlog.models.records import Repo, SyncOperation, SyncRunStatus
from archlog.services.credential_store import CredentialVault
from archlog.services.extraction import ExtractionService
from archlog.services.store import Store
from archlog.sieve.runner import sieve_artifacts
from archlog.sync.fetcher import ArtifactFetcher

logger = logging.getLogger(__name__)

SYNC_STARTED = "started"
SYNC_ALREADY_RUNNING = "already_running"

ClientFactory = Callable[[str, Repo], GitHubClient]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    """
    Coordinates fetch, sieve and extraction for tracked repositories.
    """

    def __init__(
        self,
        store: Store,
        vault: CredentialVault,
        extraction: Optional[ExtractionService] = None,
        fetcher: Optional[ArtifactFetcher] = None,
        settings: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.vault = vault
        self.extraction = extraction
        self.settings = settings or get_settings()
        self.fetcher = fetcher or ArtifactFetcher(store, self.settings, clock=clock)
        self.client_factory = client_factory or self._default_client
        self.clock = clock
        self._tasks: Set[asyncio.Task] = set()

    def _default_client(self, token: str, repo: Repo) -> GitHubClient:
        return GitHubClient(
            token,
            repo.full_name,
            base_url=self.settings.github_base_url,
            per_page=self.settings.github_per_page,
        )

    async def _check_owner(self, repo_id: str, user_id: Optional[str]) -> None:
        repo = await self.store.get_repo(repo_id)
        if user_id is not None and repo.user_id != user_id:
            raise RecordNotFoundError(f"Repository {repo_id} not found")

    async def sync(self, repo_id: str, user_id: Optional[str] = None) -> SyncOperation:
        """
        Run one sync to completion.

        Raises:
            SyncInProgressError: If another sync holds the repository lock
            RecordNotFoundError: If the repository does not exist for this user
        """
        await self._check_owner(repo_id, user_id)
        if not await self.store.try_begin_sync(repo_id):
            raise SyncInProgressError(f"Sync already in progress for repository {repo_id}")
        return await self._run_locked(repo_id, user_id)

    async def start_sync(self, repo_id: str, user_id: Optional[str] = None) -> str:
        """
        Acquire the lock and run the pipeline in the background.

        Returns:
            "started", or "already_running" without any write when the lock is held
        """
        await self._check_owner(repo_id, user_id)
        if not await self.store.try_begin_sync(repo_id):
            logger.info(f"Sync already running for repository {repo_id}")
            return SYNC_ALREADY_RUNNING

        task = asyncio.create_task(self._run_locked(repo_id, user_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return SYNC_STARTED

    async def wait_for_background(self) -> None:
        """Wait for every background sync started by this instance."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run_locked(self, repo_id: str, user_id: Optional[str]) -> SyncOperation:
        """Pipeline body. The caller already holds the repository lock."""
        operation = SyncOperation(
            repo_id=repo_id,
            user_id=user_id,
            status=SyncRunStatus.SUCCESS,
            started_at=self.clock(),
        )
        new_cursor: Optional[str] = None

        try:
            try:
                new_cursor = await self._pipeline(repo_id, user_id, operation)
            except Exception as e:
                logger.error(f"Sync failed for repository {repo_id}: {e}", exc_info=True)
                operation.status = SyncRunStatus.ERROR
                operation.error_kind = getattr(e, "kind", "error")
                operation.errors.append(str(e))

            operation.completed_at = self.clock()
            try:
                await self.store.add_sync_operation(operation)
            except Exception as e:
                logger.error(f"Failed to record sync operation for {repo_id}: {e}", exc_info=True)
        finally:
            synced_at = operation.completed_at if operation.status != SyncRunStatus.ERROR else None
            await self.store.end_sync(repo_id, cursor=new_cursor, synced_at=synced_at)

        logger.info(
            f"Sync {operation.status.value} for repository {repo_id}: "
            f"{operation.fetched_count} fetched, {operation.candidates_created} new candidates, "
            f"{operation.extracted_count} extracted, {len(operation.errors)} error(s)"
        )
        return operation

    async def _pipeline(
        self, repo_id: str, user_id: Optional[str], operation: SyncOperation
    ) -> Optional[str]:
        """Fetch, sieve, extract. Returns the cursor to store, if it moved."""
        repo = await self.store.get_repo(repo_id)
        operation.user_id = operation.user_id or repo.user_id
        operation.start_cursor = repo.cursor
        operation.end_cursor = repo.cursor

        token = self.vault.get_token(repo.user_id)
        client = self.client_factory(token, repo)

        fetch_result = await self.fetcher.fetch(repo, client)
        operation.fetched_count = fetch_result.fetched_count
        operation.errors.extend(str(failure) for failure in fetch_result.errors)
        new_cursor = fetch_result.new_cursor if fetch_result.cursor_advanced else None
        if new_cursor is not None:
            operation.end_cursor = new_cursor

        sieve = await sieve_artifacts(
            self.store,
            repo_id,
            user_id=operation.user_id,
            threshold=self.settings.sieve_threshold,
        )
        operation.sieved_count = sieve.sieved
        operation.candidates_created = sieve.candidates_created
        operation.errors.extend(sieve.errors)

        if self.settings.auto_extract and self.extraction is not None:
            summary = await self.extraction.extract_pending(repo_id, user_id=operation.user_id)
            operation.extracted_count = summary.extracted
            operation.failed_count = summary.failed
            operation.errors.extend(summary.errors)
            if summary.budget_exceeded is not None:
                operation.budget_exceeded_until = summary.budget_exceeded.reset_at

        if operation.errors:
            operation.status = SyncRunStatus.PARTIAL
        return new_cursor
