import asyncio
import contextlib
import signal
import threading
from abc import ABC, abstractmethod

import uvicorn
from fastapi import FastAPI

from secflow.utils.logging import get_logger, get_uvicorn_log_config

logger = get_logger(__name__)


class BaseJobWorker(ABC):
    """Base class for job workers with a health HTTP server and signal-driven shutdown."""

    def __init__(self, http_port: int | None = None):
        self.http_port = http_port or self._get_default_http_port()
        self.stop_event = asyncio.Event()
        self._app = self._create_app()

    @abstractmethod
    def _get_default_http_port(self) -> int:
        """Get the default HTTP server port for this worker type."""
        pass

    @property
    def app(self) -> FastAPI:
        return self._app

    def _create_app(self) -> FastAPI:
        app = FastAPI(
            title=f"{self.__class__.__name__} HTTP Server",
            docs_url=None,
            redoc_url=None,
        )

        self._register_health_routes(app)

        self._register_custom_routes(app)

        return app

    def _register_health_routes(self, app: FastAPI) -> None:
        @app.get("/health/live")
        async def liveness():
            """Liveness check - returns 200 if server is running."""
            return {"status": "healthy", "service": self.__class__.__name__}

    def _register_custom_routes(self, app: FastAPI) -> None:  # noqa: B027
        pass

    async def start_http_server(self) -> None:
        config = uvicorn.Config(
            self._app,
            host="0.0.0.0",
            port=self.http_port,
            log_config=get_uvicorn_log_config(),
        )
        server = uvicorn.Server(config)

        logger.info(f"Starting HTTP server on port {self.http_port}")
        await server.serve()

    def run_http_server_thread(self) -> None:
        asyncio.run(self.start_http_server())

    def install_signal_handlers(self) -> None:
        """Set stop_event on SIGINT/SIGTERM."""

        def _handle_signal() -> None:
            logger.info("Received shutdown signal, stopping worker...")
            self.stop_event.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _handle_signal)

    async def run_with_dedicated_http_thread(self, main_task_coro) -> None:
        http_thread = threading.Thread(
            target=self.run_http_server_thread,
            daemon=True,
            name="http-server",
        )
        http_thread.start()
        logger.info(f"Started HTTP server in dedicated thread on port {self.http_port}")

        try:
            await main_task_coro
        finally:
            logger.info("Main processing completed")
