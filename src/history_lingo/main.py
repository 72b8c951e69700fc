"""FastAPI application entry point."""

import logging
import os
import time
from collections import defaultdict
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from history_lingo.api.routes import router
from history_lingo.api.websocket import handle_browser_websocket
from history_lingo.config import Settings, get_settings
from history_lingo.context import AppContext
from history_lingo.errors import (
    ContentProviderError,
    InvalidTransitionError,
    JobError,
    LessonNotFoundError,
    StorageError,
    UserNotFoundError,
)
from history_lingo.jobs.scheduler import MaintenanceScheduler

# Simple in-memory rate limiter for WebSocket connections
_ws_connection_times: dict[str, list[float]] = defaultdict(list)
_WS_RATE_LIMIT = 10  # max WS connections per IP per window
_WS_RATE_WINDOW = 60  # seconds

# Configure structlog based on environment
is_production = os.getenv("ENV", "development").lower() == "production"

if is_production:
    # Production: JSON format for machine parsing
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
else:
    # Development: console format for human readability
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

logger = structlog.get_logger()


def create_app(settings: Settings | None = None, ctx: AppContext | None = None) -> FastAPI:
    """Build the application; tests pass their own settings and context."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context = ctx or AppContext.build(settings)
        app.state.context = context
        scheduler: MaintenanceScheduler | None = None
        if settings.scheduler_enabled:
            scheduler = MaintenanceScheduler(context.jobs, settings, context.clock)
            scheduler.start()
        yield
        if scheduler is not None:
            await scheduler.stop()

    app = FastAPI(title="History Lingo", version="0.1.0", lifespan=lifespan)
    _allowed_origins_env = os.getenv(
        "ALLOWED_ORIGINS", "http://localhost:8000,http://127.0.0.1:8000"
    )
    allowed_origins = [o.strip() for o in _allowed_origins_env.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    _register_error_handlers(app)

    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        """Optional APP_SECRET authentication middleware."""
        if not settings.app_secret or request.url.path == "/api/health":
            return await call_next(request)
        secret = request.headers.get("X-App-Secret", "")
        if secret != settings.app_secret:
            return JSONResponse({"error": "Unauthorized"}, status_code=401)
        return await call_next(request)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        """Browser WebSocket endpoint with per-IP rate limiting."""
        if settings.app_secret and websocket.headers.get("X-App-Secret", "") != settings.app_secret:
            await websocket.close(code=1008, reason="Unauthorized")
            return
        client_ip = websocket.client.host if websocket.client else "unknown"
        now = time.time()
        times = _ws_connection_times[client_ip]
        times[:] = [t for t in times if now - t < _WS_RATE_WINDOW]
        if len(times) >= _WS_RATE_LIMIT:
            await websocket.close(code=1008, reason="Rate limit exceeded")
            return
        times.append(now)
        await handle_browser_websocket(websocket, websocket.app.state.context)

    return app


def _register_error_handlers(app: FastAPI) -> None:
    def _error(status_code: int, exc: Exception, **extra) -> JSONResponse:
        return JSONResponse({"error": type(exc).__name__, "detail": str(exc), **extra}, status_code)

    @app.exception_handler(UserNotFoundError)
    async def user_not_found(request: Request, exc: UserNotFoundError):
        return _error(404, exc)

    @app.exception_handler(LessonNotFoundError)
    async def lesson_not_found(request: Request, exc: LessonNotFoundError):
        return _error(404, exc)

    @app.exception_handler(ContentProviderError)
    async def content_unavailable(request: Request, exc: ContentProviderError):
        return _error(503, exc, retryable=True)

    @app.exception_handler(InvalidTransitionError)
    async def invalid_transition(request: Request, exc: InvalidTransitionError):
        return _error(409, exc)

    @app.exception_handler(StorageError)
    async def storage_failed(request: Request, exc: StorageError):
        logger.error("storage_error", path=request.url.path, error=str(exc))
        return _error(503, exc, retryable=True)

    @app.exception_handler(JobError)
    async def job_failed(request: Request, exc: JobError):
        logger.error("job_error", job=exc.job, error=str(exc))
        return _error(500, exc)


app = create_app()


def main() -> None:
    """Run the application."""
    settings = get_settings()
    uvicorn.run(
        "history_lingo.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()
