"""
GitHub API Client

Responsibilities:
- Paged listing of closed pull requests and branch commits
- Per-item detail (files, patches, line counts)
- Translating host failures into typed errors (quota, access, not found)

PyGithub is blocking, so every call is pushed to a worker thread with
``asyncio.to_thread``; the event loop stays free for other repositories.
PyGithub's own retry/backoff is switched off: a quota or server failure
surfaces at once as a typed error and the caller decides what to do.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
from github import Auth, Github
from github.GithubException import GithubException
from github.Repository import Repository

from archlog.errors import AccessRevokedError, HostError, NotFoundError, RateLimitedError
from archlog.integrations.github.models import ChangedFile, CommitData, PullRequestData

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 60.0


def _header(headers: Optional[Dict[str, Any]], name: str) -> Optional[str]:
    if not headers:
        return None
    for key, value in headers.items():
        if key.lower() == name:
            return str(value)
    return None


def classify_github_error(
    error: GithubException, now: Optional[float] = None
) -> HostError:
    """
    Map a PyGithub exception onto the host error taxonomy.

    - 403/429 with ``x-ratelimit-remaining: 0`` (or a ``retry-after``
      header on 429) -> RateLimitedError, retry_after in seconds
    - 401, or 403 with quota left -> AccessRevokedError
    - 404 -> NotFoundError
    """
    now = time.time() if now is None else now
    status = error.status
    headers = error.headers
    message = _error_message(error)

    remaining = _header(headers, "x-ratelimit-remaining")
    retry_after_header = _header(headers, "retry-after")
    quota_exhausted = remaining is not None and remaining.strip() == "0"

    if status in (403, 429) and (quota_exhausted or (status == 429 and retry_after_header)):
        retry_after = DEFAULT_RETRY_AFTER
        reset = _header(headers, "x-ratelimit-reset")
        try:
            if retry_after_header is not None:
                retry_after = float(retry_after_header)
            elif reset is not None:
                retry_after = max(float(reset) - now, 0.0)
        except ValueError:
            logger.warning(f"Unparseable rate-limit headers: {headers}")
        return RateLimitedError(
            f"GitHub API quota exhausted: {message}", retry_after=retry_after, status=status
        )

    if status in (401, 403):
        return AccessRevokedError(f"GitHub access denied: {message}", status=status)

    if status == 404:
        return NotFoundError(f"GitHub resource not found: {message}", status=status)

    return HostError(f"GitHub API error ({status}): {message}", status=status)


def _error_message(error: GithubException) -> str:
    data = error.data
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return str(data) if data else "no message"


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class GitHubClient:
    """GitHub API client wrapper bound to one repository and one user token."""

    def __init__(
        self,
        token: str,
        full_name: str,
        base_url: str = "https://api.github.com",
        per_page: int = 50,
    ):
        self.client = Github(
            auth=Auth.Token(token), base_url=base_url, per_page=per_page, retry=None
        )
        self.full_name = full_name
        self.per_page = per_page
        self._repo: Optional[Repository] = None
        logger.info(f"GitHub client initialized for {full_name}")

    async def _call(self, fn: Callable[..., Any], *args, **kwargs) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except GithubException as e:
            raise classify_github_error(e) from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"GitHub request failed for {self.full_name}: {e}")
            raise HostError(f"GitHub request failed: {e}") from e

    def _get_repo(self) -> Repository:
        if self._repo is None:
            self._repo = self.client.get_repo(self.full_name)
        return self._repo

    async def list_closed_pull_requests(self, page: int) -> List[PullRequestData]:
        """
        One page of closed pull requests, most recently updated first.

        Args:
            page: zero-based page index

        Returns:
            Listing snapshots (line counts are not part of the listing payload)
        """

        def fetch() -> List[PullRequestData]:
            pulls = self._get_repo().get_pulls(state="closed", sort="updated", direction="desc")
            return [self._pull_snapshot(pr) for pr in pulls.get_page(page)]

        return await self._call(fetch)

    async def get_pull_request_files(
        self, number: int
    ) -> Tuple[PullRequestData, List[ChangedFile]]:
        """Full pull request detail plus its changed files and patches."""

        def fetch() -> Tuple[PullRequestData, List[ChangedFile]]:
            pr = self._get_repo().get_pull(number)
            snapshot = self._pull_snapshot(pr)
            snapshot.additions = pr.additions
            snapshot.deletions = pr.deletions
            snapshot.changed_files = pr.changed_files
            files = [self._file_snapshot(f) for f in pr.get_files()]
            return snapshot, files

        return await self._call(fetch)

    async def list_commits(
        self, branch: str, page: int, since: Optional[datetime] = None
    ) -> List[Tuple[str, datetime]]:
        """One page of ``(sha, authored_at)`` pairs on ``branch``, newest first."""

        def fetch() -> List[Tuple[str, datetime]]:
            kwargs: Dict[str, Any] = {"sha": branch}
            if since is not None:
                kwargs["since"] = since
            commits = self._get_repo().get_commits(**kwargs)
            return [
                (c.sha, _utc(c.commit.author.date)) for c in commits.get_page(page)
            ]

        return await self._call(fetch)

    async def get_commit(self, sha: str) -> CommitData:
        """Single commit with stats and patches."""

        def fetch() -> CommitData:
            commit = self._get_repo().get_commit(sha)
            git_author = commit.commit.author
            return CommitData(
                sha=commit.sha,
                message=commit.commit.message,
                html_url=commit.html_url,
                author=commit.author.login if commit.author else git_author.name,
                authored_at=_utc(git_author.date),
                additions=commit.stats.additions if commit.stats else 0,
                deletions=commit.stats.deletions if commit.stats else 0,
                files=[self._file_snapshot(f) for f in commit.files],
            )

        return await self._call(fetch)

    @staticmethod
    def _pull_snapshot(pr) -> PullRequestData:
        return PullRequestData(
            number=pr.number,
            title=pr.title,
            body=pr.body,
            html_url=pr.html_url,
            author=pr.user.login if pr.user else "unknown",
            head_ref=pr.head.ref if pr.head else None,
            labels=[label.name for label in pr.labels],
            created_at=_utc(pr.created_at),
            updated_at=_utc(pr.updated_at),
            merged_at=_utc(pr.merged_at),
        )

    @staticmethod
    def _file_snapshot(f) -> ChangedFile:
        return ChangedFile(
            filename=f.filename,
            status=f.status,
            additions=f.additions,
            deletions=f.deletions,
            patch=f.patch,
        )
