"""Request and response schemas for the stock rating endpoints."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Upstream fractions run from 1 to 9 digits; fromisoformat wants exactly 6 on older interpreters.
_FRACTION_RE = re.compile(r"\.(\d+)")


def _microsecond_fraction(match: re.Match) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_event_time(value: Any) -> datetime | None:
    """Parse an upstream timestamp into an aware UTC datetime, or None when unparseable."""

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        cleaned = _FRACTION_RE.sub(_microsecond_fraction, value.strip(), count=1).replace("Z", "+00:00")
        try:
            parsed = datetime.fromisoformat(cleaned)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


class UpstreamItem(BaseModel):
    """One rating event as delivered by the upstream listing API."""

    model_config = ConfigDict(extra="ignore")

    ticker: str
    target_from: str = ""
    target_to: str = ""
    company: str = ""
    action: str = ""
    brokerage: str = ""
    rating_from: str = ""
    rating_to: str = ""
    time: Optional[datetime] = None

    @field_validator("ticker", mode="before")
    @classmethod
    def _normalise_ticker(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator(
        "target_from", "target_to", "company", "action", "brokerage", "rating_from", "rating_to", mode="before"
    )
    @classmethod
    def _empty_for_null(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("time", mode="before")
    @classmethod
    def _parse_time(cls, value: Any) -> datetime | None:
        return parse_event_time(value)


class UpstreamPage(BaseModel):
    items: list[UpstreamItem] = Field(default_factory=list)
    next_page: str = ""

    @field_validator("items", mode="before")
    @classmethod
    def _items_for_null(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("next_page", mode="before")
    @classmethod
    def _next_page_text(cls, value: Any) -> Any:
        return "" if value is None else str(value)


class StockRatingSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticker: str
    company: str
    brokerage: str
    action: str
    rating_from: str
    rating_to: str
    target_from: str
    target_to: str
    time: datetime
    created_at: datetime


class FetchPageRequest(BaseModel):
    page: int = 0


class FetchPageResponse(BaseModel):
    items: list[UpstreamItem]
    next_page: str
    stored: int


class BulkFetchRequest(BaseModel):
    start_page: int = 0
    end_page: int = 0


class BulkFetchResponse(BaseModel):
    message: str
    pages_fetched: str
    pages_with_data: int
    total_fetched: int
    total_inserted: int
    total_stocks: int
    batches: int


class ListRequest(BaseModel):
    page_number: int = 0
    page_length: int = 0


class SearchRequest(BaseModel):
    page_number: int = 1
    page_length: int = 20
    search_term: Optional[str] = None
    action: Optional[str] = None
    rating_from: Optional[str] = None
    rating_to: Optional[str] = None
    target_from_min: Optional[float] = None
    target_from_max: Optional[float] = None
    target_to_min: Optional[float] = None
    target_to_max: Optional[float] = None


class PaginationSchema(BaseModel):
    page_number: int
    page_length: int
    total_records: int
    total_pages: int
    has_next: bool
    has_previous: bool


class ListResponse(BaseModel):
    data: list[StockRatingSchema]
    pagination: PaginationSchema


class SearchResponse(ListResponse):
    applied_filters: dict[str, Any]


class ActionsResponse(BaseModel):
    actions: list[str]


class FilterOptionsResponse(BaseModel):
    actions: list[str]
    ratings_from: list[str]
    ratings_to: list[str]


class RecommendationSchema(BaseModel):
    ticker: str
    company: str
    current_rating: str
    target_price: str
    score: float
    recommendation: str
    reason: str
    brokerage: str
    price_change: float
    rating_improvement: bool


class RecommendationsResponse(BaseModel):
    recommendations: list[RecommendationSchema]
    generated_at: datetime
    total_analyzed: int


__all__ = [
    "ActionsResponse",
    "BulkFetchRequest",
    "BulkFetchResponse",
    "FetchPageRequest",
    "FetchPageResponse",
    "FilterOptionsResponse",
    "ListRequest",
    "ListResponse",
    "PaginationSchema",
    "RecommendationSchema",
    "RecommendationsResponse",
    "SearchRequest",
    "SearchResponse",
    "StockRatingSchema",
    "UpstreamItem",
    "UpstreamPage",
    "parse_event_time",
]
