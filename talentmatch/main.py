from contextlib import asynccontextmanager
import logging
import time
from uuid import uuid4

from fastapi import FastAPI
from starlette.requests import Request

from talentmatch.api.router import api_router
from talentmatch.core.config import Settings, get_settings
from talentmatch.core.telemetry import configure_logging, setup_telemetry, shutdown_telemetry
from talentmatch.services.applications import get_application_tracker
from talentmatch.services.matcher_client import get_matcher_client
from talentmatch.services.repository import get_repository

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings, "api")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            shutdown_telemetry(app.state.telemetry)
            await get_repository().close()
            get_repository.cache_clear()
            get_matcher_client.cache_clear()
            get_application_tracker.cache_clear()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.telemetry = setup_telemetry(settings, "api", app)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        started_at = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started_at) * 1000.0
        route = request.scope.get("route")
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "http request id=%s method=%s route=%s status=%s duration_ms=%.2f",
            request_id,
            request.method,
            getattr(route, "path", request.url.path),
            response.status_code,
            elapsed_ms,
        )
        return response

    app.include_router(api_router)
    return app


app = create_app()
