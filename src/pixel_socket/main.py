"""
PixelSocket Status Service
==========================

FastAPI entry point that runs a PixelSocket client for the lifetime of
the process and exposes its liveness and throughput.

Endpoints:
    GET  /        - Service information
    GET  /health  - Liveness probe (is process alive?)
    GET  /ready   - Readiness probe (is the stream connected?)
    GET  /stats   - Connection statistics snapshot
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from pixel_socket import __version__
from pixel_socket.config import Settings, load_config, setup_logging
from pixel_socket.errors import PixelSocketError
from pixel_socket.stream import PixelSocket


logger = logging.getLogger(__name__)


def _log_error(error: Exception) -> None:
    logger.warning(f"Client error: {error}")


def create_app(
    settings: Settings,
    client: Optional[PixelSocket] = None,
) -> FastAPI:
    """
    Build the status application.

    Args:
        settings: Loaded settings
        client: Client to run. If None, one is created from settings.client.

    Returns:
        FastAPI application whose lifespan connects and disconnects the client
    """
    if client is None:
        client = PixelSocket(settings.client, on_error=_log_error)

    startup_time = time.time()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan manager with graceful shutdown."""
        nonlocal startup_time
        startup_time = time.time()

        logger.info(f"Starting pixel-socket {__version__}")
        logger.info(f"Stream URL: {settings.client.url}")
        logger.info(f"Save directory: {settings.client.save_directory}")

        try:
            await client.connect()
        except PixelSocketError as e:
            logger.error(f"Client failed to start: {e}")
            raise

        yield

        logger.info("Shutting down gracefully...")
        await client.disconnect()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="PixelSocket",
        description="Streaming client for Pixel Socket image servers",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.client = client

    @app.get("/")
    async def root() -> JSONResponse:
        """Service information endpoint."""
        return JSONResponse({
            "service": "PixelSocket",
            "version": __version__,
            "url": settings.client.url,
            "save_directory": (
                str(settings.client.save_directory)
                if settings.client.save_directory else None
            ),
            "state": client.state.value,
        })

    @app.get("/health")
    async def health() -> JSONResponse:
        """
        Liveness probe - is the process alive?

        Always returns 200 if the service is running.
        """
        return JSONResponse({
            "status": "healthy",
            "uptime_seconds": round(time.time() - startup_time, 1),
        })

    @app.get("/ready")
    async def ready() -> JSONResponse:
        """
        Readiness probe - is the stream connected?

        Returns 200 if connected, 503 otherwise.
        """
        if client.is_connected():
            return JSONResponse({
                "status": "ready",
                "stream_connected": True,
            })
        return JSONResponse(
            {
                "status": "not_ready",
                "stream_connected": False,
                "state": client.state.value,
            },
            status_code=503,
        )

    @app.get("/stats")
    async def stats() -> JSONResponse:
        """Connection statistics snapshot."""
        return JSONResponse({
            "uptime_seconds": round(time.time() - startup_time, 1),
            "state": client.state.value,
            **client.get_stats().to_dict(),
        })

    return app


def main() -> None:
    """Run the status service with uvicorn."""
    import uvicorn

    settings = load_config()
    setup_logging(settings)

    # Container platforms use PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    main()
