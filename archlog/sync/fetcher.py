"""
Artifact Fetcher

Pages merged pull requests (or branch commits) from GitHub and upserts them
as artifacts.

Contract:
- bounded work per call: item limit plus a hard page cap
- idempotent: artifacts are keyed by (repo_id, external_id, type)
- the cursor only moves past work that was stored; on any per-item failure
  the prior cursor is returned so the failed items are fetched again
- an item whose detail request failed is not stored at all, so a listing
  snapshot without files or diff never reaches the sieve
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from archlog.config import Settings, get_settings
from archlog.errors import AccessRevokedError, CursorMismatchError, RateLimitedError
from archlog.integrations.github.client import GitHubClient
from archlog.integrations.github.models import ChangedFile, CommitData, PullRequestData
from archlog.models.records import Artifact, ArtifactSource, ArtifactType, Repo
from archlog.services.store import Store
from archlog.sync import cursor as cursors
from archlog.sync.cursor import CursorItem

logger = logging.getLogger(__name__)

# Failures that make every following request fail as well
_WALK_ENDING_ERRORS = (RateLimitedError, AccessRevokedError)


@dataclass
class FetchFailure:
    """One item that could not be fully fetched or stored."""

    external_id: str
    error: str
    kind: str

    def __str__(self) -> str:
        return f"{self.external_id}: {self.error}"


@dataclass
class FetchResult:
    fetched_count: int = 0
    new_cursor: Optional[str] = None
    cursor_advanced: bool = False
    errors: List[FetchFailure] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.errors


def build_diff(files: List[ChangedFile], max_bytes: int) -> Tuple[Optional[str], bool]:
    """
    Concatenate file patches into one unified diff, capped at ``max_bytes``.

    Returns:
        (diff text or None when nothing had a patch, truncated flag)
    """
    parts = [
        f"diff --git a/{f.filename} b/{f.filename}\n{f.patch}"
        for f in files
        if f.patch
    ]
    if not parts:
        return None, False

    encoded = "\n".join(parts).encode("utf-8")
    if len(encoded) <= max_bytes:
        return encoded.decode("utf-8"), False
    # Cut on a byte boundary without leaving half a code point behind
    return encoded[:max_bytes].decode("utf-8", errors="ignore"), True


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ArtifactFetcher:
    """Incremental, resumable fetch of repository history into artifacts."""

    def __init__(
        self,
        store: Store,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock

    async def fetch(self, repo: Repo, client: GitHubClient) -> FetchResult:
        """Fetch from whichever history source the repository is configured for."""
        if repo.artifact_source == ArtifactSource.COMMITS:
            return await self.fetch_commits(repo, client, repo.cursor)
        return await self.fetch_pull_requests(repo, client, repo.cursor)

    def _window(self, cursor_text: Optional[str], limit: Optional[int]):
        parsed = cursors.parse(cursor_text)
        if parsed is None:
            lookback = self.clock() - timedelta(days=self.settings.first_sync_lookback_days)
            return parsed, limit or self.settings.first_sync_limit, lookback
        return parsed, limit or self.settings.fetch_limit, None

    async def fetch_pull_requests(
        self,
        repo: Repo,
        client: GitHubClient,
        cursor_text: Optional[str],
        limit: Optional[int] = None,
    ) -> FetchResult:
        """
        Fetch merged pull requests newer than ``cursor_text``.

        Listing failures (quota, access, not found) propagate; per-item
        failures are returned in ``FetchResult.errors``.
        """
        parsed, limit, lookback = self._window(cursor_text, limit)
        per_page = self.settings.github_per_page

        retained: List[PullRequestData] = []
        done = False
        for page in range(self.settings.fetch_max_pages):
            prs = await client.list_closed_pull_requests(page)
            for pr in prs:
                if lookback is not None and pr.updated_at < lookback:
                    done = True
                    break
                if pr.merged_at is None:
                    continue
                if not cursors.is_newer(CursorItem("pr", pr.number, pr.merged_at), parsed):
                    done = True
                    break
                retained.append(pr)
                if len(retained) >= limit:
                    done = True
                    break
            if done or len(prs) < per_page:
                break
        else:
            logger.info(
                f"Page cap ({self.settings.fetch_max_pages}) reached for {repo.full_name}"
            )

        logger.info(f"Retained {len(retained)} merged pull requests for {repo.full_name}")

        result = FetchResult()
        stored_items: List[CursorItem] = []
        for pr in retained:
            external_id = str(pr.number)
            try:
                detail, files = await client.get_pull_request_files(pr.number)
            except _WALK_ENDING_ERRORS as e:
                logger.warning(f"Stopping fetch for {repo.full_name} at PR #{pr.number}: {e}")
                result.errors.append(FetchFailure(external_id, str(e), e.kind))
                break
            except Exception as e:
                logger.warning(f"Failed to fetch files for PR #{pr.number}: {e}")
                result.errors.append(
                    FetchFailure(external_id, f"Failed to fetch diff: {e}", "diff")
                )
                continue

            diff, truncated = build_diff(files, self.settings.max_diff_bytes)
            artifact = Artifact(
                repo_id=repo.id,
                external_id=external_id,
                type=ArtifactType.PR,
                url=detail.html_url,
                branch=detail.head_ref,
                title=detail.title,
                body=detail.body,
                author=detail.author,
                labels=detail.labels,
                file_paths=[f.filename for f in files],
                authored_at=detail.created_at,
                merged_at=detail.merged_at,
                updated_at=detail.updated_at,
                diff=diff,
                diff_truncated=truncated,
                files_changed=detail.changed_files,
                additions=detail.additions,
                deletions=detail.deletions,
            )
            if await self._store(artifact, result):
                stored_items.append(CursorItem("pr", pr.number, pr.merged_at))

        return self._finish(repo, cursor_text, stored_items, result)

    async def fetch_commits(
        self,
        repo: Repo,
        client: GitHubClient,
        cursor_text: Optional[str],
        limit: Optional[int] = None,
    ) -> FetchResult:
        """Fetch commits on the default branch newer than ``cursor_text``."""
        parsed, limit, lookback = self._window(cursor_text, limit)
        since = lookback
        if parsed is not None and parsed.type == cursors.CursorType.TIMESTAMP:
            since = parsed.as_datetime()

        retained: List[Tuple[str, datetime]] = []
        done = False
        for page in range(self.settings.fetch_max_pages):
            listing = await client.list_commits(repo.default_branch, page, since=since)
            for sha, authored_at in listing:
                if not cursors.is_newer(CursorItem("commit", sha, authored_at), parsed):
                    done = True
                    break
                retained.append((sha, authored_at))
                if len(retained) >= limit:
                    done = True
                    break
            if done or len(listing) < self.settings.github_per_page:
                break

        logger.info(f"Retained {len(retained)} commits for {repo.full_name}")

        result = FetchResult()
        stored_items: List[CursorItem] = []
        for sha, authored_at in retained:
            try:
                commit: CommitData = await client.get_commit(sha)
            except _WALK_ENDING_ERRORS as e:
                logger.warning(f"Stopping fetch for {repo.full_name} at {sha}: {e}")
                result.errors.append(FetchFailure(sha, str(e), e.kind))
                break
            except Exception as e:
                logger.warning(f"Failed to fetch commit {sha}: {e}")
                result.errors.append(FetchFailure(sha, f"Failed to fetch commit: {e}", "host"))
                continue

            diff, truncated = build_diff(commit.files, self.settings.max_diff_bytes)
            artifact = Artifact(
                repo_id=repo.id,
                external_id=commit.sha,
                type=ArtifactType.COMMIT,
                url=commit.html_url,
                branch=repo.default_branch,
                title=commit.title,
                body=commit.message,
                author=commit.author,
                file_paths=[f.filename for f in commit.files],
                authored_at=commit.authored_at,
                merged_at=commit.authored_at,
                updated_at=commit.authored_at,
                diff=diff,
                diff_truncated=truncated,
                files_changed=len(commit.files),
                additions=commit.additions,
                deletions=commit.deletions,
            )
            if await self._store(artifact, result):
                stored_items.append(CursorItem("commit", sha, authored_at))

        return self._finish(repo, cursor_text, stored_items, result)

    async def _store(self, artifact: Artifact, result: FetchResult) -> bool:
        try:
            await self.store.upsert_artifact(artifact)
        except Exception as e:
            logger.error(
                f"Failed to store {artifact.type.value} {artifact.external_id}: {e}",
                exc_info=True,
            )
            result.errors.append(
                FetchFailure(artifact.external_id, f"Failed to store: {e}", "storage")
            )
            return False
        result.fetched_count += 1
        return True

    def _finish(
        self,
        repo: Repo,
        prior: Optional[str],
        stored_items: List[CursorItem],
        result: FetchResult,
    ) -> FetchResult:
        result.new_cursor = prior
        if result.errors:
            logger.warning(
                f"Holding cursor for {repo.full_name} at {prior}: "
                f"{len(result.errors)} item(s) failed"
            )
            return result

        latest = cursors.latest_from(stored_items)
        if latest is None:
            return result

        try:
            moved = cursors.compare(latest, prior) > 0
        except CursorMismatchError:
            logger.info(f"Cursor type changed for {repo.full_name}: {prior} -> {latest}")
            moved = True

        if moved:
            result.new_cursor = latest
            result.cursor_advanced = True
        return result
