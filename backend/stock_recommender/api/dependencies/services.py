"""FastAPI dependencies resolving collaborators stored on the application state."""

from __future__ import annotations

from fastapi import Request

from stock_recommender.analysis.scoring import ScoringWeights
from stock_recommender.ingest.bulk import BulkIngestionCoordinator
from stock_recommender.providers.llm import LLMClient
from stock_recommender.providers.upstream import UpstreamClient
from stock_recommender.services.chat import ChatService
from stock_recommender.services.metrics import MetricsService
from stock_recommender.services.store import RatingStore


def get_store(request: Request) -> RatingStore:
    return request.app.state.store


def get_weights(request: Request) -> ScoringWeights:
    return request.app.state.weights


def get_upstream(request: Request) -> UpstreamClient:
    return request.app.state.upstream


def get_llm(request: Request) -> LLMClient:
    return request.app.state.llm


def get_bulk_coordinator(request: Request) -> BulkIngestionCoordinator:
    state = request.app.state
    settings = state.settings
    return BulkIngestionCoordinator(
        state.bulk_upstream,
        state.store,
        concurrency=settings.bulk_concurrency,
        batch_size=settings.bulk_batch_size,
        max_retries=settings.bulk_max_retries,
        retry_page_offset=settings.bulk_retry_page_offset,
        max_page_span=settings.bulk_max_page_span,
    )


def get_metrics_service(request: Request) -> MetricsService:
    return MetricsService(request.app.state.database)


def get_chat_service(request: Request) -> ChatService:
    state = request.app.state
    return ChatService(state.store, state.llm, state.weights)


__all__ = [
    "get_bulk_coordinator",
    "get_chat_service",
    "get_llm",
    "get_metrics_service",
    "get_store",
    "get_upstream",
    "get_weights",
]
