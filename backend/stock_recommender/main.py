"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from stock_recommender.analysis.scoring import ScoringWeights
from stock_recommender.api.routes import api_router
from stock_recommender.config import AppSettings, get_settings
from stock_recommender.core.errors import InvalidRequestError
from stock_recommender.core.logging import setup_logging
from stock_recommender.core.telemetry import setup_telemetry
from stock_recommender.db.session import Database
from stock_recommender.ingest.bulk import BulkIngestionError, PageFetcher
from stock_recommender.providers.llm import LLMClient, LLMError
from stock_recommender.providers.upstream import UpstreamClient, UpstreamError
from stock_recommender.services.metrics import MetricError
from stock_recommender.services.store import RatingStore, StoreError

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as ``{"error": message}``."""

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        if any(error.get("type") == "json_invalid" for error in errors):
            return _error(status.HTTP_400_BAD_REQUEST, "Invalid JSON format in request body")
        details = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()) if part != 'body')}: {error.get('msg')}"
            for error in errors
        )
        return _error(status.HTTP_400_BAD_REQUEST, f"Invalid request: {details}")

    @app.exception_handler(InvalidRequestError)
    async def _invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(UpstreamError)
    async def _upstream_error(request: Request, exc: UpstreamError) -> JSONResponse:
        logger.error("Upstream failure: %s", exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(BulkIngestionError)
    async def _bulk_error(request: Request, exc: BulkIngestionError) -> JSONResponse:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError) -> JSONResponse:
        logger.error("Store failure: %s", exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(MetricError)
    async def _metric_error(request: Request, exc: MetricError) -> JSONResponse:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(LLMError)
    async def _llm_error(request: Request, exc: LLMError) -> JSONResponse:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def create_app(
    settings: AppSettings | None = None,
    *,
    database: Database | None = None,
    upstream: PageFetcher | None = None,
    bulk_upstream: PageFetcher | None = None,
    llm: LLMClient | None = None,
) -> FastAPI:
    """Build the application; collaborators not passed in are created from settings."""

    settings = settings or get_settings()
    setup_logging()
    # Inconsistent weights abort startup.
    weights = ScoringWeights.from_settings(settings).validate()

    database_instance = database or Database(settings.resolved_database_url())
    owned_clients: list = []
    if upstream is None:
        upstream = UpstreamClient(
            settings.upstream_base_url,
            settings.api_token,
            timeout_seconds=settings.upstream_timeout_seconds,
        )
        owned_clients.append(upstream)
    if bulk_upstream is None:
        bulk_upstream = UpstreamClient(
            settings.upstream_base_url,
            settings.api_token,
            timeout_seconds=settings.bulk_request_timeout_seconds,
        )
        owned_clients.append(bulk_upstream)
    if llm is None:
        llm = LLMClient(settings.openai_api_key, settings.openai_model, timeout_seconds=settings.llm_timeout_seconds)
        owned_clients.append(llm)

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        await database_instance.create_all()
        logger.info("Service configuration: %s", settings.dict_for_logging())
        yield
        for client in owned_clients:
            await client.aclose()
        if database is None:
            await database_instance.dispose()

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=_lifespan)
    app.state.settings = settings
    app.state.database = database_instance
    app.state.store = RatingStore(database_instance)
    app.state.weights = weights
    app.state.upstream = upstream
    app.state.bulk_upstream = bulk_upstream
    app.state.llm = llm

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        """Return service readiness metadata."""

        return {
            "status": "ok",
            "service": settings.app_name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    setup_telemetry(app, settings, engine=database_instance.engine)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run("stock_recommender.main:app", host="0.0.0.0", port=settings.port)


__all__ = ["app", "create_app", "register_exception_handlers", "run"]


if __name__ == "__main__":
    run()
