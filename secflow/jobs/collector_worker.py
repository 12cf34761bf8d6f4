"""
Collector worker entrypoint.

Scans the configured GitHub organization on a cron schedule (APScheduler, same event loop) and publishes
every repository to NATS. Health endpoints are served from a dedicated HTTP thread.
"""

from __future__ import annotations

import asyncio
import sys

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from secflow.clients.github import GitHubClient
from secflow.clients.nats import NATSClient
from secflow.collector.scanner import SCAN_PAGE_SIZE, RepositoryScanner
from secflow.collector.schedule import run_scan_with_timeout, setup_scheduler
from secflow.errors import SecflowError
from secflow.jobs.base_worker import BaseJobWorker
from secflow.utils.config import CollectorSettings, get_config_value
from secflow.utils.logging import get_logger

logger = get_logger(__name__)


class CollectorWorker(BaseJobWorker):
    """
    Worker that hosts a health HTTP server and runs the repository scan on a cron schedule.
    """

    def __init__(self, settings: CollectorSettings, http_port: int | None = None):
        super().__init__(http_port)
        self.settings = settings
        self.scheduler: AsyncIOScheduler | None = None
        self.scanner: RepositoryScanner | None = None
        self._bus: NATSClient | None = None
        self._github_client: GitHubClient | None = None

    def _get_default_http_port(self) -> int:
        # Separate port from the validator so they can run side-by-side
        return int(get_config_value("COLLECTOR_HTTP_PORT", 8090))

    def _register_custom_routes(self, app: FastAPI) -> None:
        @app.get("/jobs")
        async def list_jobs():
            jobs = []
            if self.scheduler:
                for j in self.scheduler.get_jobs():
                    jobs.append(
                        {
                            "id": j.id,
                            "name": j.name,
                            "next_run_time": str(j.next_run_time) if j.next_run_time else None,
                            "trigger": str(j.trigger),
                        }
                    )
            return {
                "jobs": jobs,
                "scheduler_running": bool(self.scheduler and self.scheduler.running),
            }

    async def start(self) -> None:
        """Connect to NATS, then create and start the scheduler. Safe to call once at startup."""
        self._bus = await NATSClient.connect(self.settings.nats_url)
        self._github_client = GitHubClient(token=self.settings.github_token, per_page=SCAN_PAGE_SIZE)
        self.scanner = RepositoryScanner(
            github_client=self._github_client,
            bus=self._bus,
            org=self.settings.github_org,
            subject=self.settings.subject,
        )

        self.scheduler = AsyncIOScheduler(timezone="UTC")
        setup_scheduler(self.scheduler, self.scanner.scan_repositories, self.settings.cron_schedule)
        self.scheduler.start()
        logger.info(f"Cron scheduler started with schedule: {self.settings.cron_schedule}")

        if self.settings.run_on_startup:
            logger.info("Running initial scan on startup...")
            try:
                await run_scan_with_timeout(self.scanner.scan_repositories)
            except (SecflowError, TimeoutError) as e:
                logger.error(f"Initial scan failed: {e}")

    async def shutdown(self) -> None:
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("APScheduler shut down")
        if self._bus is not None:
            await self._bus.close()
        if self._github_client is not None:
            self._github_client.close()

    async def run(self) -> None:
        self.install_signal_handlers()
        try:
            await self.start()
            await self.stop_event.wait()
        finally:
            await self.shutdown()


async def main() -> None:
    settings = CollectorSettings.from_env()
    worker = CollectorWorker(settings)

    logger.info(f"Starting collector worker for organization: {settings.github_org}")
    await worker.run_with_dedicated_http_thread(worker.run())


def run() -> None:
    try:
        asyncio.run(main())
    except (SecflowError, ValueError) as e:
        logger.error(f"Failed to start collector: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
