"""GitHub client utility for interacting with the GitHub API."""

import asyncio
from collections.abc import Callable
from functools import wraps
from typing import TypeVar

from github import Auth, Consts, Github
from github.Repository import Repository

from secflow.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def run_in_executor(func: Callable[..., T]) -> Callable[..., asyncio.Future[T]]:
    """Decorator to run PyGithub calls in a thread pool to avoid blocking the event loop."""

    @wraps(func)
    async def wrapper(self, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: func(self, *args, **kwargs))

    return wrapper


class GitHubClient:
    """A client for interacting with the GitHub API."""

    client: Github
    per_page = 30

    def __init__(
        self, token: str, per_page: int | None = None, base_url: str = Consts.DEFAULT_BASE_URL
    ):
        """Initialize the GitHub client.

        Args:
            token: GitHub personal access token, sent as a bearer credential on every request.
            per_page: how many items per page on all requests from this client, 0 < per_page <= 100; default 30
            base_url: API root, overridden for GitHub Enterprise

        Raises:
            ValueError: If the token is empty or per_page is out of range
        """
        if not token:
            raise ValueError("A GitHub token must be provided")

        if per_page is not None:
            if per_page <= 0 or per_page > 100:
                raise ValueError("per_page must be in range (0, 100]")
            self.per_page = per_page

        logger.info("Initializing GitHub client with PAT authentication")
        # Each API call is exactly one HTTP request: no retries, no sleeping out a rate limit.
        # Repository handles are lazy so only the call that needs data hits the API.
        self.client = Github(
            auth=Auth.Token(token),
            base_url=base_url,
            per_page=self.per_page,
            retry=None,
            lazy=True,
        )

    @run_in_executor
    def get_contents_metadata(self, owner: str, repo_name: str, path: str) -> None:
        """Fetch the contents metadata for a path, raising GithubException on any non-2xx response.

        The repository handle is lazy so only the contents request hits the API.
        """
        repo = self.client.get_repo(f"{owner}/{repo_name}")
        repo.get_contents(path)

    @run_in_executor
    def list_organization_repos(self, org: str) -> list[Repository]:
        """Get every repository of an organization, following pagination to the last page."""
        github_org = self.client.get_organization(org)
        repos = []

        logger.info(f"Starting to fetch repositories from {org} organization...")
        for count, repo in enumerate(github_org.get_repos(), start=1):
            repos.append(repo)
            if count % 100 == 0:
                logger.info(f"Fetched {count} repositories so far...")

        logger.info(f"Completed fetching {len(repos)} repositories from {org}")
        return repos

    def close(self) -> None:
        self.client.close()
