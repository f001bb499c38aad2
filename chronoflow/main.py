"""
FastAPI application factory
"""
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware

from chronoflow.api.v1 import categories, sync, time_entries
from chronoflow.application.scheduler import shutdown_scheduler, start_scheduler
from chronoflow.config import get_settings
from chronoflow.domain.errors import ChronoflowError
from chronoflow.infrastructure.db.session import check_db_connection, dispose_engine
from chronoflow.infrastructure.sync.broadcaster import SyncBroadcaster

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def error_body(code: str, message: str) -> dict:
    return {"error": code, "message": message}


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Catches ALL unhandled exceptions, including ones from sync routes"""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception:
            tb_str = traceback.format_exc()
            logger.error("\n%s\nERROR on %s %s\n%s%s", "=" * 60, request.method, request.url.path, tb_str, "=" * 60)
            return JSONResponse(status_code=500, content=error_body("internal", "Internal server error"))


def _format_validation_messages(exc: RequestValidationError) -> list[str]:
    messages: list[str] = []
    for err in exc.errors():
        loc = [str(v) for v in err.get("loc", []) if str(v) not in {"body", "query", "path"}]
        field = ".".join(loc) if loc else "field"
        err_type = str(err.get("type", ""))
        message = str(err.get("msg", "Invalid value"))

        if err_type in {"missing", "value_error.missing"}:
            messages.append(f"{field} is required")
        else:
            messages.append(f"{field}: {message}")

    # Preserve order while de-duplicating.
    return list(dict.fromkeys(messages))


async def chronoflow_error_handler(request: Request, exc: ChronoflowError):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = _format_validation_messages(exc)
    message = messages[0] if len(messages) == 1 else "Validation failed"
    return JSONResponse(status_code=400, content=error_body("invalid_argument", message))


def create_app(broadcaster: SyncBroadcaster | None = None, run_scheduler: bool = True) -> FastAPI:
    """
    Application factory - creates and configures the FastAPI app

    Args:
        broadcaster: sync registry to use (default: one built from settings)
        run_scheduler: start the background auto-stop sweep with the app

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    if broadcaster is None:
        broadcaster = SyncBroadcaster(
            heartbeat_seconds=settings.SYNC_HEARTBEAT_SECONDS,
            queue_size=settings.SYNC_QUEUE_SIZE,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        broadcaster.init()
        if run_scheduler:
            start_scheduler(broadcaster)
        try:
            yield
        finally:
            if run_scheduler:
                shutdown_scheduler()
            broadcaster.shutdown()
            dispose_engine()

    app = FastAPI(
        title="ChronoFlow",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.broadcaster = broadcaster

    app.add_middleware(ErrorLoggingMiddleware)

    # Middleware
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY
    )

    app.add_exception_handler(ChronoflowError, chronoflow_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Routers
    app.include_router(time_entries.router)
    app.include_router(categories.router)
    app.include_router(sync.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (checks the database)"""
        check_db_connection()
        return "ok"

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "chronoflow.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
