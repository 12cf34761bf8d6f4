"""Tests for RepositoryScanner."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import requests
from conftest import SOURCE_SUBJECT
from github import GithubException

from secflow.collector.scanner import RepositoryScanner, ScanResult
from secflow.errors import BusPublishError, OrganizationScanError


def _github_repo(name: str, language: str | None = None, topics: list[str] | None = None):
    repo = MagicMock()
    repo.name = name
    repo.clone_url = f"https://github.com/acme/{name}.git"
    repo.ssh_url = f"git@github.com:acme/{name}.git"
    repo.created_at = datetime(2024, 1, 15, 10, 0, tzinfo=UTC)
    repo.updated_at = datetime(2024, 1, 16, 12, 0, tzinfo=UTC)
    repo.language = language
    repo.topics = topics or []
    return repo


@pytest.fixture
def github_client():
    client = MagicMock()
    client.list_organization_repos = AsyncMock(return_value=[])
    return client


@pytest.fixture
def scanner(github_client, fake_bus):
    return RepositoryScanner(
        github_client=github_client, bus=fake_bus, org="acme", subject=SOURCE_SUBJECT
    )


class TestScanRepositories:
    @pytest.mark.asyncio
    async def test_publishes_one_record_per_repository(self, scanner, github_client, fake_bus):
        github_client.list_organization_repos.return_value = [
            _github_repo("api", language="Go", topics=["backend"]),
            _github_repo("docs"),
        ]

        result = await scanner.scan_repositories()

        github_client.list_organization_repos.assert_awaited_once_with("acme")
        assert result == ScanResult(found=2, published=2, failed=0)

        messages = [json.loads(data) for data in fake_bus.published_to(SOURCE_SUBJECT)]
        assert [m["name"] for m in messages] == ["api", "docs"]
        assert messages[0]["language"] == "Go"
        assert messages[0]["topics"] == ["backend"]
        assert messages[0]["https_url"] == messages[0]["clone_url"]
        assert "language" not in messages[1]
        assert "topics" not in messages[1]

    @pytest.mark.asyncio
    async def test_empty_organization_publishes_nothing(self, scanner, fake_bus):
        result = await scanner.scan_repositories()

        assert result == ScanResult(found=0, published=0, failed=0)
        assert fake_bus.published == []

    @pytest.mark.asyncio
    async def test_publish_failure_skips_only_that_repository(
        self, scanner, github_client, fake_bus
    ):
        github_client.list_organization_repos.return_value = [
            _github_repo("first"),
            _github_repo("second"),
            _github_repo("third"),
        ]
        original_publish = fake_bus.publish

        async def flaky_publish(subject, data):
            if json.loads(data)["name"] == "second":
                raise BusPublishError("connection closed")
            await original_publish(subject, data)

        fake_bus.publish = flaky_publish

        result = await scanner.scan_repositories()

        assert result == ScanResult(found=3, published=2, failed=1)
        names = [json.loads(data)["name"] for data in fake_bus.published_to(SOURCE_SUBJECT)]
        assert names == ["first", "third"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            GithubException(401, {"message": "Bad credentials"}, None),
            requests.ConnectionError("reset"),
        ],
    )
    async def test_listing_failure_raises(self, scanner, github_client, fake_bus, error):
        github_client.list_organization_repos.side_effect = error

        with pytest.raises(OrganizationScanError):
            await scanner.scan_repositories()

        assert fake_bus.published == []
