"""
Tests for GitHub error classification and the client wrapper.
"""

import json
import threading
import time
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import Mock

import pytest
import requests
from github.GithubException import GithubException

from archlog.errors import AccessRevokedError, HostError, NotFoundError, RateLimitedError
from archlog.integrations.github.client import GitHubClient, classify_github_error


def github_error(status, headers=None, message="API failure"):
    return GithubException(status, {"message": message}, headers or {})


class TestClassification:
    def test_exhausted_quota_403(self):
        error = github_error(
            403, {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000120"}
        )
        classified = classify_github_error(error, now=1700000000)
        assert isinstance(classified, RateLimitedError)
        assert classified.retry_after == 120
        assert classified.kind == "rate_limited"

    def test_retry_after_header_wins(self):
        error = github_error(429, {"retry-after": "15", "x-ratelimit-reset": "1700009999"})
        classified = classify_github_error(error, now=1700000000)
        assert isinstance(classified, RateLimitedError)
        assert classified.retry_after == 15

    def test_rate_limit_without_timing_defaults(self):
        classified = classify_github_error(github_error(403, {"x-ratelimit-remaining": "0"}))
        assert isinstance(classified, RateLimitedError)
        assert classified.retry_after == 60

    def test_reset_in_the_past_is_zero(self):
        error = github_error(403, {"x-ratelimit-remaining": "0", "x-ratelimit-reset": "100"})
        assert classify_github_error(error, now=200).retry_after == 0

    def test_forbidden_with_quota_left_is_access_revoked(self):
        error = github_error(403, {"x-ratelimit-remaining": "4999"}, "Resource not accessible")
        classified = classify_github_error(error)
        assert isinstance(classified, AccessRevokedError)
        assert "Resource not accessible" in classified.message

    def test_unauthorized(self):
        classified = classify_github_error(github_error(401, message="Bad credentials"))
        assert isinstance(classified, AccessRevokedError)
        assert classified.status == 401

    def test_not_found(self):
        assert isinstance(classify_github_error(github_error(404)), NotFoundError)

    def test_other_status_is_generic_host_error(self):
        classified = classify_github_error(github_error(502))
        assert type(classified) is HostError
        assert classified.status == 502


class TestClientWrapper:
    @pytest.mark.asyncio
    async def test_github_exceptions_are_translated(self):
        client = GitHubClient("token", "acme/api")
        client.client = Mock()
        client.client.get_repo.side_effect = github_error(404, message="Not Found")

        with pytest.raises(NotFoundError) as exc_info:
            await client.list_closed_pull_requests(0)
        assert isinstance(exc_info.value.__cause__, GithubException)

    @pytest.mark.asyncio
    async def test_list_closed_pull_requests_snapshots(self):
        pr = Mock()
        pr.number = 7
        pr.title = "Adopt event sourcing"
        pr.body = "Because"
        pr.html_url = "https://github.com/acme/api/pull/7"
        pr.user.login = "alice"
        pr.head.ref = "feature/events"
        label = Mock()
        label.name = "architecture"
        pr.labels = [label]
        pr.created_at = None
        pr.merged_at = None
        pr.updated_at = datetime(2024, 1, 1)

        paginated = Mock()
        paginated.get_page.return_value = [pr]
        repository = Mock()
        repository.get_pulls.return_value = paginated

        client = GitHubClient("token", "acme/api")
        client.client = Mock()
        client.client.get_repo.return_value = repository

        result = await client.list_closed_pull_requests(2)

        repository.get_pulls.assert_called_once_with(state="closed", sort="updated", direction="desc")
        paginated.get_page.assert_called_once_with(2)
        assert result[0].number == 7
        assert result[0].labels == ["architecture"]
        assert result[0].updated_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_transport_errors_become_host_errors(self):
        client = GitHubClient("token", "acme/api")
        client.client = Mock()
        client.client.get_repo.side_effect = requests.exceptions.ConnectionError("connection reset")

        with pytest.raises(HostError) as exc_info:
            await client.get_pull_request_files(7)
        assert "connection reset" in exc_info.value.message


class QuotaExhaustedHandler(BaseHTTPRequestHandler):
    """Serves one repository whose pull request listing is over quota."""

    def _reply(self, status, payload, headers=None):
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        path = self.path.split("?", 1)[0]
        self.server.requested.append(path)
        base = f"http://127.0.0.1:{self.server.server_port}"
        if path == "/repos/acme/api":
            self._reply(
                200,
                {
                    "id": 1,
                    "name": "api",
                    "full_name": "acme/api",
                    "url": f"{base}/repos/acme/api",
                    "owner": {"login": "acme"},
                },
            )
        else:
            self._reply(
                403,
                {"message": "API rate limit exceeded"},
                {
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(int(time.time()) + 3),
                },
            )

    def log_message(self, format, *args):
        pass


@pytest.fixture
def quota_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), QuotaExhaustedHandler)
    server.requested = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.mark.asyncio
async def test_exhausted_quota_raises_without_waiting(quota_server):
    client = GitHubClient(
        "token", "acme/api", base_url=f"http://127.0.0.1:{quota_server.server_port}"
    )

    started = time.monotonic()
    with pytest.raises(RateLimitedError) as exc_info:
        await client.list_closed_pull_requests(0)

    assert time.monotonic() - started < 2
    assert 0 <= exc_info.value.retry_after <= 4
    assert quota_server.requested.count("/repos/acme/api/pulls") == 1
