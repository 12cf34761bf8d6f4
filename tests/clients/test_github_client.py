"""Tests for GitHubClient."""

import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import MagicMock, patch

import pytest

from secflow.clients.github import GitHubClient
from secflow.errors import ExistenceCheckError
from secflow.validator.checker import ExistenceChecker


@pytest.fixture
def mock_github():
    with patch("secflow.clients.github.Github") as github_cls:
        yield github_cls.return_value


class FakeGitHubAPI:
    """Local HTTP server answering every request with one canned response and counting requests."""

    def __init__(self):
        self.status = 200
        self.body: dict = {}
        self.headers: dict[str, str] = {}
        self.paths: list[str] = []

        api = self

        class Handler(BaseHTTPRequestHandler):
            def do_GET(self):
                api.paths.append(self.path)
                data = json.dumps(api.body).encode()
                self.send_response(api.status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(data)))
                for name, value in api.headers.items():
                    self.send_header(name, value)
                self.end_headers()
                self.wfile.write(data)

            def log_message(self, format, *args):
                pass

        self.server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self.url = f"http://127.0.0.1:{self.server.server_address[1]}"
        self._thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self._thread.start()

    def close(self):
        self.server.shutdown()
        self.server.server_close()


@pytest.fixture
def github_api():
    api = FakeGitHubAPI()
    yield api
    api.close()


class TestInit:
    def test_empty_token_is_rejected(self):
        with pytest.raises(ValueError):
            GitHubClient(token="")

    @pytest.mark.parametrize("per_page", [0, -1, 101])
    def test_per_page_out_of_range_is_rejected(self, per_page):
        with pytest.raises(ValueError):
            GitHubClient(token="test-token", per_page=per_page)

    def test_per_page_is_passed_to_pygithub(self):
        with patch("secflow.clients.github.Github") as github_cls:
            GitHubClient(token="test-token", per_page=100)

        assert github_cls.call_args.kwargs["per_page"] == 100

    def test_client_never_retries_and_is_lazy(self):
        with patch("secflow.clients.github.Github") as github_cls:
            GitHubClient(token="test-token")

        kwargs = github_cls.call_args.kwargs
        assert kwargs["retry"] is None
        assert kwargs["lazy"] is True


class TestGetContentsMetadata:
    @pytest.mark.asyncio
    async def test_fetches_contents_through_lazy_repository(self, mock_github):
        repo = MagicMock()
        mock_github.get_repo.return_value = repo
        client = GitHubClient(token="test-token")

        await client.get_contents_metadata("acme", "demo", "appsec-config.yml")

        mock_github.get_repo.assert_called_once_with("acme/demo")
        repo.get_contents.assert_called_once_with("appsec-config.yml")

    @pytest.mark.asyncio
    async def test_errors_propagate(self, mock_github):
        mock_github.get_repo.return_value.get_contents.side_effect = RuntimeError("boom")
        client = GitHubClient(token="test-token")

        with pytest.raises(RuntimeError):
            await client.get_contents_metadata("acme", "demo", "appsec-config.yml")


class TestListOrganizationRepos:
    @pytest.mark.asyncio
    async def test_returns_every_repository(self, mock_github):
        repos = [MagicMock(name=f"repo-{i}") for i in range(250)]
        mock_github.get_organization.return_value.get_repos.return_value = iter(repos)
        client = GitHubClient(token="test-token", per_page=100)

        result = await client.list_organization_repos("acme")

        mock_github.get_organization.assert_called_once_with("acme")
        assert result == repos


def test_close_releases_pygithub_session(mock_github):
    client = GitHubClient(token="test-token")

    client.close()

    mock_github.close.assert_called_once()


class TestSingleRequestPerCheck:
    """Every existence check is exactly one HTTP request, whatever the answer."""

    @pytest.mark.asyncio
    async def test_file_present(self, github_api):
        github_api.body = {"type": "file", "name": "appsec-config.yml", "path": "appsec-config.yml"}
        checker = ExistenceChecker(GitHubClient(token="test-token", base_url=github_api.url))

        assert await checker.exists("acme", "demo", "appsec-config.yml") is True
        assert github_api.paths == ["/repos/acme/demo/contents/appsec-config.yml"]

    @pytest.mark.asyncio
    async def test_not_found(self, github_api):
        github_api.status = 404
        github_api.body = {"message": "Not Found"}
        checker = ExistenceChecker(GitHubClient(token="test-token", base_url=github_api.url))

        assert await checker.exists("acme", "demo", "appsec-config.yml") is False
        assert len(github_api.paths) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [500, 502, 503])
    async def test_server_error_is_not_retried(self, github_api, status):
        github_api.status = status
        github_api.body = {"message": "Server Error"}
        checker = ExistenceChecker(GitHubClient(token="test-token", base_url=github_api.url))

        with pytest.raises(ExistenceCheckError):
            await checker.exists("acme", "demo", "appsec-config.yml")

        assert len(github_api.paths) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_fails_without_waiting_for_reset(self, github_api):
        github_api.status = 403
        github_api.body = {"message": "API rate limit exceeded for user ID 1."}
        github_api.headers = {
            "X-RateLimit-Limit": "5000",
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(time.time()) + 3600),
        }
        checker = ExistenceChecker(GitHubClient(token="test-token", base_url=github_api.url))

        started = time.monotonic()
        with pytest.raises(ExistenceCheckError):
            await checker.exists("acme", "demo", "appsec-config.yml")

        assert len(github_api.paths) == 1
        assert time.monotonic() - started < 5
