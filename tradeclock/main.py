"""
FastAPI application factory
"""
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import Response

from tradeclock.config import get_settings
from tradeclock.infrastructure.db.session import check_db_connection
from tradeclock.application.reminders_service import ReminderChangeFeed
from tradeclock.application.visibility import VisibilityCache
from tradeclock.api.v1 import insights, push, reminders

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every unhandled exception, including ones raised in sync routes."""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            tb_str = traceback.format_exc()
            logger.error(f"\n{'='*60}\nERROR on {request.method} {request.url.path}\n{tb_str}{'='*60}")
            return Response(content=f"Internal Server Error: {exc}", status_code=500)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    if settings.SCHEDULER_ENABLED:
        from tradeclock.application.scheduler import start_scheduler, shutdown_scheduler
        start_scheduler()
        try:
            yield
        finally:
            shutdown_scheduler()
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")
        yield


def create_app() -> FastAPI:
    """
    Application factory - builds and configures the FastAPI app

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    app = FastAPI(
        title="TradeClock",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    # Shared in-process state
    app.state.reminder_feed = ReminderChangeFeed()
    app.state.visibility_cache = VisibilityCache()

    # Middleware
    app.add_middleware(ErrorLoggingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY
    )

    # Routers
    app.include_router(reminders.router)
    app.include_router(insights.router)
    app.include_router(push.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (checks the database is reachable)"""
        check_db_connection()
        return "ok"

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "tradeclock.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
