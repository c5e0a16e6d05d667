"""
FastAPI application for the voice note pipeline.

Thin HTTP layer over PipelineManager: submissions, job status, statistics
and provider health.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from voicenotes.api import cache_routes, routes, websocket
from voicenotes.config import get_settings
from voicenotes.errors import PipelineError
from voicenotes.logging_config import setup_logging
from voicenotes.models.schemas import ErrorResponse, ProviderHealth
from voicenotes.services.pipeline import PipelineManager

# Configure logging before anything else
settings = get_settings()
setup_logging(settings)
logger = logging.getLogger(__name__)

# Error code -> HTTP status
ERROR_STATUS = {
    "INVALID_PAYLOAD": 400,
    "NOT_FOUND": 404,
    "QUEUE_FULL": 429,
}


def create_app(manager: PipelineManager | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        manager: Pre-built manager (tests); built from settings if None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build, start and finally close the pipeline."""
        logger.info("Starting Voice Notes API")
        logger.info(f"Log level: {settings.log_level}")

        pipeline = manager or PipelineManager.from_settings(settings)
        app.state.manager = pipeline
        await pipeline.start()

        health = await pipeline.monitor.probe_all()
        logger.info(
            "Providers: " + ", ".join(f"{name}={ok}" for name, ok in health.items())
        )

        yield

        logger.info("Shutting down Voice Notes API")
        await pipeline.close()

    app = FastAPI(
        title="Voice Notes API",
        description="API for voice note transcription and content processing",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(routes.router)
    app.include_router(cache_routes.router)
    app.include_router(websocket.router)

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
        status_code = ERROR_STATUS.get(exc.code, 500)
        headers = {"Retry-After": "1"} if exc.code == "QUEUE_FULL" else None
        body = ErrorResponse(
            code=exc.code,
            message=exc.message,
            retryable=exc.retryable,
            details=exc.details,
        )
        return JSONResponse(
            status_code=status_code,
            content=body.model_dump(mode="json"),
            headers=headers,
        )

    @app.get("/health")
    async def health_check() -> dict:
        """
        Health check endpoint.

        Returns:
            Basic health status with provider availability
        """
        return {"status": "ok", "providers": app.state.manager.health_check()}

    @app.get("/health/providers", response_model=dict[str, ProviderHealth])
    async def providers_health() -> dict[str, ProviderHealth]:
        """Last-known health of every provider."""
        return app.state.manager.monitor.snapshot()

    @app.post("/health/providers/probe")
    async def probe_providers() -> dict[str, bool]:
        """Probe every provider now."""
        return await app.state.manager.monitor.probe_all()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "voicenotes.main:app",
        host="0.0.0.0",
        port=8802,
        reload=True,
    )
