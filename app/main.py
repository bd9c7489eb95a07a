import logging
import os
import re
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.api import api_router
from app.core.config import settings
from app.services.notification_checker import create_notification_checker
from database.connection import init_db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

PREFLIGHT_EXEMPT_PREFIX = "/webhooks/"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_db()

    checker = None
    if settings.notification_checker_enabled:
        checker = create_notification_checker()
        checker.start()
    app.state.notification_checker = checker

    yield

    # Shutdown: stop scheduling, let an in-flight cycle finish
    if checker is not None:
        checker.stop()
        await checker.wait_stopped()


class DynamicCORSMiddleware(BaseHTTPMiddleware):
    """CORS middleware allowing the web app origin (any origin in development)."""

    def __init__(self, app, allowed_origin: str):
        super().__init__(app)
        self.allowed_pattern = re.compile(rf"^{re.escape(allowed_origin.rstrip('/'))}$")

    async def dispatch(self, request: Request, call_next):
        origin = request.headers.get("origin")
        env = os.getenv("ENVIRONMENT", settings.environment)

        # Answer browser preflights here; server-to-server callbacks keep their own method handling
        is_preflight = (
            request.method == "OPTIONS"
            and origin is not None
            and "access-control-request-method" in request.headers
            and not request.url.path.startswith(PREFLIGHT_EXEMPT_PREFIX)
        )
        if is_preflight:
            response = Response(status_code=200)
        else:
            response = await call_next(request)

        if origin:
            if env != "production" or self.allowed_pattern.match(origin):
                response.headers["Access-Control-Allow-Origin"] = origin
                response.headers["Access-Control-Allow-Credentials"] = "true"
            else:
                logger.warning(f"CORS rejected - Origin '{origin}' not allowed")

        response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS, PATCH"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization, X-Requested-With"

        return response


def create_app() -> FastAPI:
    app = FastAPI(
        title="Grow Tracker API",
        description="Tier entitlements, grow notifications and Stripe webhooks",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(DynamicCORSMiddleware, allowed_origin=settings.web_app_url)

    app.include_router(api_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
