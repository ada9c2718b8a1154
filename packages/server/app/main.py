"""
Stagetrack API Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.core.config import get_settings
from app.core.database import engine, init_db
from app.core.errors import StagetrackError
from app.core.logging_config import configure_logging
from app.core.middleware import RequestContextMiddleware
from app.core.redis import close_redis
from app.api.v1 import router as api_v1_router
from stagetrack_shared.schemas.common import ErrorResponse

settings = get_settings()
log = structlog.get_logger()


async def stagetrack_error_handler(request: Request, exc: StagetrackError) -> JSONResponse:
    """Map a domain error to its HTTP status with a {detail, code} body."""
    log.warning(
        "request_rejected",
        code=exc.kind.value,
        status_code=exc.status_code,
        detail=exc.message,
    )
    body = ErrorResponse(detail=exc.message, code=exc.kind)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Stagetrack",
        description="Project stages, their dependencies and derived project status.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (order matters: the last added is outermost)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(StagetrackError, stagetrack_error_handler)

    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: the database must answer."""
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as exc:
            log.error("readiness_check_failed", error=str(exc))
            return JSONResponse(status_code=503, content={"status": "unavailable"})
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("stagetrack_starting", create_tables=settings.create_tables_on_startup)
        if settings.create_tables_on_startup:
            await init_db()

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("stagetrack_shutting_down")
        await close_redis()

    return app


app = create_app()
