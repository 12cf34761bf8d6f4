"""Organization scanner: lists every repository of a GitHub organization and publishes it to NATS."""

from dataclasses import dataclass

import requests
from github import GithubException

from secflow.clients.github import GitHubClient
from secflow.clients.nats import MessageBus
from secflow.errors import OrganizationScanError
from secflow.models import RepositoryRecord
from secflow.utils.error_handling import ErrorCounter, record_exception_and_ignore
from secflow.utils.logging import get_logger

logger = get_logger(__name__)

SCAN_PAGE_SIZE = 100


@dataclass(frozen=True)
class ScanResult:
    found: int
    published: int
    failed: int


class RepositoryScanner:
    """Publishes one RepositoryRecord per repository of an organization."""

    def __init__(self, github_client: GitHubClient, bus: MessageBus, org: str, subject: str):
        self.github_client = github_client
        self.bus = bus
        self.org = org
        self.subject = subject

    async def scan_repositories(self) -> ScanResult:
        """List all repositories of the organization and publish each of them.

        A publish failure for one repository is logged and counted; the scan moves on.

        Raises:
            OrganizationScanError: If the repositories cannot be listed
        """
        logger.info(f"Starting repository scan for organization: {self.org}")

        try:
            repos = await self.github_client.list_organization_repos(self.org)
        except (GithubException, requests.RequestException) as e:
            raise OrganizationScanError(f"failed to list repositories of {self.org}: {e}") from e

        logger.info(f"Found {len(repos)} repositories")

        counter: ErrorCounter = {}
        for repo in repos:
            with record_exception_and_ignore(
                logger, f"Failed to publish repository {repo.name}", counter
            ):
                await self.publish_repository(RepositoryRecord.from_github(repo))

        result = ScanResult(
            found=len(repos),
            published=counter.get("successful", 0),
            failed=counter.get("failed", 0),
        )
        logger.info(
            f"Successfully processed {result.found} repositories",
            published=result.published,
            failed=result.failed,
        )
        return result

    async def publish_repository(self, record: RepositoryRecord) -> None:
        await self.bus.publish(self.subject, record.to_json())
        logger.debug(f"Published repository: {record.name}")
