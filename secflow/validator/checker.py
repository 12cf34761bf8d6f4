"""Existence checks for files at a repository root."""

import asyncio

import requests
from github import GithubException

from secflow.clients.github import GitHubClient
from secflow.errors import ExistenceCheckCancelledError, ExistenceCheckError
from secflow.utils.config import DEFAULT_PROBE_PATH
from secflow.utils.logging import get_logger

logger = get_logger(__name__)


class ExistenceChecker:
    """Answers whether a path exists in a repository, treating "not found" as a normal answer."""

    def __init__(self, github_client: GitHubClient, probe_path: str = DEFAULT_PROBE_PATH):
        self.github_client = github_client
        self.probe_path = probe_path

    async def has_probe_file(
        self, owner: str, repo_name: str, shutdown_event: asyncio.Event | None = None
    ) -> bool:
        return await self.exists(owner, repo_name, self.probe_path, shutdown_event)

    async def exists(
        self,
        owner: str,
        repo_name: str,
        path: str,
        shutdown_event: asyncio.Event | None = None,
    ) -> bool:
        """Check whether `path` exists in `owner/repo_name`.

        Any successful contents response counts, whether the path is a file or a directory.

        Args:
            owner: Repository owner (user or organization)
            repo_name: Repository name
            path: Path relative to the repository root
            shutdown_event: When set while the request is in flight, the wait is abandoned

        Returns:
            True if the path exists, False if the API answered 404

        Raises:
            ValueError: If owner or repo_name is empty
            ExistenceCheckCancelledError: If shutdown began before the API answered
            ExistenceCheckError: For every other failure (auth, network, rate limit, 5xx)
        """
        if not owner or not repo_name:
            raise ValueError("owner and repo_name must be non-empty")

        request = asyncio.ensure_future(
            self.github_client.get_contents_metadata(owner, repo_name, path)
        )
        try:
            if shutdown_event is None:
                await request
            else:
                await self._await_unless_shutdown(request, shutdown_event, owner, repo_name, path)
        except GithubException as e:
            if e.status == 404:
                logger.debug(f"{path} not found in {owner}/{repo_name}")
                return False
            raise ExistenceCheckError(owner, repo_name, path, f"GitHub API error {e.status}: {e}") from e
        except requests.RequestException as e:
            raise ExistenceCheckError(owner, repo_name, path, str(e)) from e
        except ExistenceCheckError:
            raise
        except Exception as e:
            # Unparseable responses and other client faults fail closed like an API error
            raise ExistenceCheckError(owner, repo_name, path, f"unexpected error: {e!r}") from e

        return True

    async def _await_unless_shutdown(
        self,
        request: asyncio.Future[None],
        shutdown_event: asyncio.Event,
        owner: str,
        repo_name: str,
        path: str,
    ) -> None:
        shutdown_wait = asyncio.ensure_future(shutdown_event.wait())
        try:
            done, _ = await asyncio.wait(
                {request, shutdown_wait}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            shutdown_wait.cancel()

        if request not in done:
            # The worker thread runs to completion on its own; its result is discarded
            request.cancel()
            raise ExistenceCheckCancelledError(owner, repo_name, path, "shutdown in progress")

        request.result()
