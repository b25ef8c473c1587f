"""Stock rating endpoints: ingestion, listing, search, ranking and LLM helpers."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status

from stock_recommender.analysis.recommendations import build_recommendations
from stock_recommender.analysis.scoring import ScoringWeights
from stock_recommender.api.dependencies.services import (
    get_bulk_coordinator,
    get_chat_service,
    get_llm,
    get_metrics_service,
    get_store,
    get_upstream,
    get_weights,
)
from stock_recommender.ingest.bulk import BulkIngestionCoordinator
from stock_recommender.ingest.pages import ingest_page
from stock_recommender.providers.llm import LLMClient
from stock_recommender.providers.upstream import UpstreamClient
from stock_recommender.schemas.chat import ChatRequest, ChatResponse, SummaryResponse
from stock_recommender.schemas.metrics import MetricsResponse
from stock_recommender.schemas.stocks import (
    ActionsResponse,
    BulkFetchRequest,
    BulkFetchResponse,
    FetchPageRequest,
    FetchPageResponse,
    FilterOptionsResponse,
    ListRequest,
    ListResponse,
    RecommendationsResponse,
    SearchRequest,
    SearchResponse,
    StockRatingSchema,
)
from stock_recommender.services.chat import ChatService
from stock_recommender.services.metrics import MetricsService
from stock_recommender.services.query import applied_filters, list_ratings, search_ratings
from stock_recommender.services.store import RatingStore
from stock_recommender.services.summary import generate_summary

router = APIRouter()
logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 50


@router.post("", response_model=FetchPageResponse)
async def fetch_page(
    request: FetchPageRequest,
    upstream: UpstreamClient = Depends(get_upstream),
    store: RatingStore = Depends(get_store),
) -> FetchPageResponse:
    result = await ingest_page(upstream, store, request.page)
    logger.info("Stored %d new ratings from page %d", result.stored, request.page)
    return FetchPageResponse(items=result.page.items, next_page=result.page.next_page, stored=result.stored)


@router.post("/bulk", response_model=BulkFetchResponse)
async def fetch_bulk(
    request: BulkFetchRequest,
    coordinator: BulkIngestionCoordinator = Depends(get_bulk_coordinator),
) -> BulkFetchResponse:
    result = await coordinator.run(request.start_page, request.end_page)
    return BulkFetchResponse(**result.as_response())


@router.post("/list", response_model=ListResponse)
async def list_stocks(request: ListRequest, store: RatingStore = Depends(get_store)) -> ListResponse:
    rows, pagination = await list_ratings(store, request)
    return ListResponse(
        data=[StockRatingSchema.model_validate(row) for row in rows],
        pagination=pagination.as_dict(),
    )


@router.post("/search", response_model=SearchResponse)
async def search_stocks(request: SearchRequest, store: RatingStore = Depends(get_store)) -> SearchResponse:
    rows, pagination = await search_ratings(store, request)
    return SearchResponse(
        data=[StockRatingSchema.model_validate(row) for row in rows],
        pagination=pagination.as_dict(),
        applied_filters=applied_filters(request),
    )


@router.get("/actions", response_model=ActionsResponse)
async def list_actions(store: RatingStore = Depends(get_store)) -> ActionsResponse:
    return ActionsResponse(actions=await store.distinct_values("action"))


@router.get("/filter-options", response_model=FilterOptionsResponse)
async def filter_options(store: RatingStore = Depends(get_store)) -> FilterOptionsResponse:
    return FilterOptionsResponse(
        actions=await store.distinct_values("action"),
        ratings_from=await store.distinct_values("rating_from"),
        ratings_to=await store.distinct_values("rating_to"),
    )


@router.get("/recommendations", response_model=RecommendationsResponse)
async def recommendations(
    limit: int = Query(10, description="Number of tickers to return (1-50)"),
    store: RatingStore = Depends(get_store),
    weights: ScoringWeights = Depends(get_weights),
) -> RecommendationsResponse:
    if limit < 1 or limit > MAX_RECOMMENDATIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid limit parameter. Must be between 1 and {MAX_RECOMMENDATIONS}",
        )
    events = await store.all_events()
    ranked = build_recommendations(events, weights, limit)
    return RecommendationsResponse(
        recommendations=[item.as_dict() for item in ranked],
        generated_at=datetime.now(timezone.utc),
        total_analyzed=len(events),
    )


@router.get("/metrics", response_model=MetricsResponse)
async def metrics(service: MetricsService = Depends(get_metrics_service)) -> MetricsResponse:
    return MetricsResponse(success=True, metrics=await service.collect())


@router.get("/summary", response_model=SummaryResponse)
async def summary(
    store: RatingStore = Depends(get_store),
    llm: LLMClient = Depends(get_llm),
    weights: ScoringWeights = Depends(get_weights),
) -> SummaryResponse:
    result = await generate_summary(store, llm, weights)
    return SummaryResponse(
        summary=result.summary,
        generated_at=datetime.now(timezone.utc),
        tokens_used=result.tokens_used,
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(request: ChatRequest, service: ChatService = Depends(get_chat_service)) -> ChatResponse:
    result = await service.reply(request.message, request.conversation_memory, request.recent_messages)
    return ChatResponse(
        response=result.response,
        tokens_used=result.tokens_used,
        generated_at=datetime.now(timezone.utc),
        context_used=result.context,
        updated_memory=result.memory,
    )


__all__ = ["router"]
