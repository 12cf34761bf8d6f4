"""
Validator worker entrypoint.

Consumes repository messages from NATS and routes each one to the valid or invalid subject depending on
whether the repository carries the probe file.
"""

import asyncio
import sys

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from secflow.errors import SecflowError
from secflow.jobs.base_worker import BaseJobWorker
from secflow.utils.config import ValidatorSettings, get_config_value
from secflow.utils.logging import get_logger
from secflow.validator.pipeline import PipelineState, ValidationPipeline

logger = get_logger(__name__)


class ValidatorWorker(BaseJobWorker):
    """Hosts a ValidationPipeline next to health endpoints."""

    def __init__(self, pipeline: ValidationPipeline, http_port: int | None = None):
        self.pipeline = pipeline
        super().__init__(http_port)

    def _get_default_http_port(self) -> int:
        return int(get_config_value("VALIDATOR_HTTP_PORT", 8080))

    def _register_custom_routes(self, app: FastAPI) -> None:
        @app.get("/health/ready")
        async def readiness():
            """Readiness check - 200 only once the pipeline accepts live messages."""
            ready = self.pipeline.state == PipelineState.LIVE
            return JSONResponse(
                status_code=200 if ready else 503,
                content={
                    "status": "ready" if ready else "not_ready",
                    "state": str(self.pipeline.state),
                    "service": self.__class__.__name__,
                },
            )

        @app.get("/stats")
        async def stats():
            s = self.pipeline.stats
            return {
                "state": str(self.pipeline.state),
                "drained": s.drained,
                "drain_failed": s.drain_failed,
                "processed": s.processed,
                "failed": s.failed,
                "refused": s.refused,
                "in_flight": s.in_flight,
            }

    async def run(self) -> None:
        """Start the pipeline, wait for a shutdown signal, stop the pipeline."""
        self.install_signal_handlers()

        await self.pipeline.start()
        try:
            await self.stop_event.wait()
        finally:
            await self.pipeline.stop()


async def main() -> None:
    settings = ValidatorSettings.from_env()
    pipeline = ValidationPipeline.from_settings(settings)
    worker = ValidatorWorker(pipeline)

    logger.info(f"Starting validator worker for subject: {settings.source_subject}")
    await worker.run_with_dedicated_http_thread(worker.run())


def run() -> None:
    try:
        asyncio.run(main())
    except SecflowError as e:
        logger.error(f"Failed to start validator: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
