"""Translate list/search requests into store queries with pagination metadata."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from stock_recommender.core.errors import InvalidRequestError
from stock_recommender.schemas.stocks import ListRequest, SearchRequest
from stock_recommender.services.store import RatingStore, SearchFilters

MAX_PAGE_LENGTH = 1000
DEFAULT_SEARCH_PAGE_LENGTH = 20


@dataclass(frozen=True)
class Pagination:
    page_number: int
    page_length: int
    total_records: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def build(cls, page_number: int, page_length: int, total_records: int) -> "Pagination":
        total_pages = math.ceil(total_records / page_length) if total_records else 0
        return cls(
            page_number=page_number,
            page_length=page_length,
            total_records=total_records,
            total_pages=total_pages,
            has_next=page_number < total_pages,
            has_previous=page_number > 1,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "page_number": self.page_number,
            "page_length": self.page_length,
            "total_records": self.total_records,
            "total_pages": self.total_pages,
            "has_next": self.has_next,
            "has_previous": self.has_previous,
        }


def validate_list_request(request: ListRequest) -> None:
    if request.page_number <= 0:
        raise InvalidRequestError("page_number must be greater than 0")
    if request.page_length <= 0 or request.page_length > MAX_PAGE_LENGTH:
        raise InvalidRequestError(f"page_length must be between 1 and {MAX_PAGE_LENGTH}")


def search_page_length(requested: int | None) -> int:
    """Missing or non-positive lengths fall back to the default; large ones are clamped."""

    if requested is None or requested <= 0:
        return DEFAULT_SEARCH_PAGE_LENGTH
    return min(requested, MAX_PAGE_LENGTH)


def filters_from_request(request: SearchRequest) -> SearchFilters:
    return SearchFilters(
        search_term=request.search_term,
        action=request.action,
        rating_from=request.rating_from,
        rating_to=request.rating_to,
        target_from_min=request.target_from_min,
        target_from_max=request.target_from_max,
        target_to_min=request.target_to_min,
        target_to_max=request.target_to_max,
    )


def applied_filters(request: SearchRequest) -> dict[str, Any]:
    """Echo of the filters that actually constrained the query."""

    applied: dict[str, Any] = {}
    if request.search_term and request.search_term.strip():
        applied["search_term"] = request.search_term.strip()
    for name in ("action", "rating_from", "rating_to"):
        value = getattr(request, name)
        if value and value.strip().lower() != "all":
            applied[name] = value
    for name in ("target_from_min", "target_from_max", "target_to_min", "target_to_max"):
        value = getattr(request, name)
        if value is not None and value > 0:
            applied[name] = value
    return applied


async def list_ratings(store: RatingStore, request: ListRequest) -> tuple[list, Pagination]:
    validate_list_request(request)
    offset = (request.page_number - 1) * request.page_length
    rows, total = await store.query_page(offset, request.page_length)
    return rows, Pagination.build(request.page_number, request.page_length, total)


async def search_ratings(store: RatingStore, request: SearchRequest) -> tuple[list, Pagination]:
    if request.page_number <= 0:
        raise InvalidRequestError("page_number must be greater than 0")
    page_length = search_page_length(request.page_length)
    offset = (request.page_number - 1) * page_length
    rows, total = await store.query_filtered(filters_from_request(request), offset, page_length)
    return rows, Pagination.build(request.page_number, page_length, total)


__all__ = [
    "DEFAULT_SEARCH_PAGE_LENGTH",
    "MAX_PAGE_LENGTH",
    "Pagination",
    "applied_filters",
    "filters_from_request",
    "list_ratings",
    "search_page_length",
    "search_ratings",
    "validate_list_request",
]
