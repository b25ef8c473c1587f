"""Fetch and store a single upstream page."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from stock_recommender.core.errors import InvalidRequestError
from stock_recommender.ingest.bulk import MAX_PAGE_NUMBER, PageFetcher, storable
from stock_recommender.schemas.stocks import UpstreamPage
from stock_recommender.services.store import RatingStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageIngestResult:
    page: UpstreamPage
    stored: int


def validate_page(page: int) -> None:
    if page == 0:
        raise InvalidRequestError("Missing required field 'page' in request body")
    if page < 0:
        raise InvalidRequestError("Page number must be positive")
    if page > MAX_PAGE_NUMBER:
        raise InvalidRequestError("Page number too large")


async def ingest_page(client: PageFetcher, store: RatingStore, page: int) -> PageIngestResult:
    validate_page(page)
    result = await client.fetch_page(page)
    logger.info("Fetched %d items from upstream page %d", len(result.items), page)

    stored = 0
    for item in storable(result.items):
        if await store.insert_if_absent(item):
            stored += 1
    return PageIngestResult(page=result, stored=stored)


__all__ = ["PageIngestResult", "ingest_page", "validate_page"]
