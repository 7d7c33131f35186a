from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from murmur import __version__
from murmur.app.api.routes import router as api_router
from murmur.app.core.config import Settings, settings
from murmur.app.core.http_client import init_http_client
from murmur.app.core.logging import get_log_context, get_logger, setup_logging
from murmur.app.exceptions import MurmurException, StoreError, TransformationError
from murmur.app.middleware.request_id import RequestIdMiddleware, get_request_id
from murmur.app.pipeline import Pipeline, build_pipeline


def create_app(pipeline: Optional[Pipeline] = None, config: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        pipeline: Prebuilt pipeline; built from config in the lifespan if None
        config: Settings; defaults to the pipeline's or the global settings

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)
    cfg = config or (pipeline.settings if pipeline is not None else settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan context manager.

        Opens the shared HTTP client, builds the pipeline and recovers
        queued messages on startup; cancels pending deliveries and closes
        the store on shutdown.
        """
        async with init_http_client(cfg) as http_client:
            active = pipeline or build_pipeline(cfg, http_client=http_client)
            app.state.pipeline = active

            if cfg.queue_sweep_on_startup:
                try:
                    result = await active.queue.process_due()
                    logger.info(
                        "Startup queue sweep complete",
                        extra={
                            "processed": result.processed,
                            "scheduled": result.scheduled,
                            "errors": len(result.errors),
                        },
                    )
                except StoreError as e:
                    logger.error(f"Startup queue sweep failed: {e.message}")

            logger.info(
                "Application startup complete",
                extra={"environment": cfg.environment, "debug_mode": cfg.debug},
            )

            yield

            await active.close()
            app.state.pipeline = None

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Murmur",
        description="Anonymous feedback relay with style transformation and delayed delivery",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline

    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check with store status."""
        health_status: dict[str, Any] = {"status": "ok", "components": {}}
        active = request.app.state.pipeline
        if active is None:
            health_status["status"] = "starting"
            return health_status

        try:
            await active.store.get("_health_check")
            health_status["components"]["store"] = {
                "status": "ok",
                "type": type(active.store).__name__,
            }
        except StoreError as e:
            health_status["status"] = "degraded"
            health_status["components"]["store"] = {
                "status": "error",
                "error": e.message[:100],
            }

        health_status["components"]["provider"] = {"name": active.provider.name}
        return health_status

    @app.exception_handler(MurmurException)
    async def murmur_exception_handler(request: Request, exc: MurmurException) -> JSONResponse:
        """Translate relay exceptions into the API error shape."""
        context = get_log_context(request_id=get_request_id(request), path=request.url.path)
        if isinstance(exc, (TransformationError, StoreError)):
            logger.warning(f"{exc.code}: {exc.message}", extra=context)
        else:
            logger.info(f"{exc.code}: {exc.message}", extra=context)
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        if errors:
            location = ".".join(str(part) for part in errors[0].get("loc", ())[1:])
            message = f"{location}: {errors[0].get('msg')}" if location else errors[0].get("msg")
        else:
            message = "Invalid request body"
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": message, "code": "validation_error"},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail, "code": "http_error"},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns the traceback to the client; the full details are
        logged server-side.
        """
        request_id = get_request_id(request)
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )
        content = {
            "success": False,
            "error": str(exc) if cfg.debug else "Internal server error",
            "code": "internal_error",
            "requestId": request_id,
        }
        return JSONResponse(status_code=500, content=content)

    return app


# Create the application instance
app = create_app()
