"""Parallel ingestion of a contiguous range of upstream pages.

A fixed number of worker tasks pull page numbers from a shared iterator and
push each page's outcome onto one bounded queue. A single consumer drains the
queue, buffers items and flushes them to the store in sequential batches. The
first fetch error cancels the remaining workers and aborts the job; batches
already flushed stay committed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Iterator, Protocol

from stock_recommender.core.errors import InvalidRequestError
from stock_recommender.schemas.stocks import UpstreamItem, UpstreamPage
from stock_recommender.services.store import RatingStore

logger = logging.getLogger(__name__)

MAX_PAGE_NUMBER = 999_999_999
PROGRESS_LOG_INTERVAL = 1000


class PageFetcher(Protocol):
    async def fetch_page(self, page: int) -> UpstreamPage: ...


class InvalidPageRange(InvalidRequestError):
    """Raised when a bulk page range is rejected before any work starts."""


class BulkIngestionError(RuntimeError):
    """Raised when a page fetch fails and the bulk job is aborted."""

    def __init__(self, page: int, cause: BaseException):
        super().__init__(f"Failed to fetch page {page}: {cause}")
        self.page = page
        self.cause = cause


@dataclass
class BulkIngestResult:
    start_page: int
    end_page: int
    pages: int = 0
    pages_with_data: int = 0
    total_fetched: int = 0
    inserted: int = 0
    skipped_invalid: int = 0
    batches: int = 0
    stored_count: int = 0
    elapsed_seconds: float = 0.0

    @property
    def duplicates_skipped(self) -> int:
        return max(self.total_fetched - self.skipped_invalid - self.inserted, 0)

    def as_response(self) -> dict[str, object]:
        return {
            "message": "Successfully fetched and stored stock data",
            "pages_fetched": f"{self.start_page}-{self.end_page}",
            "pages_with_data": self.pages_with_data,
            "total_fetched": self.total_fetched,
            "total_inserted": self.inserted,
            "total_stocks": self.stored_count,
            "batches": self.batches,
        }


@dataclass
class _PageOutcome:
    page: int
    items: list[UpstreamItem] = field(default_factory=list)
    error: BaseException | None = None


def validate_page_range(start_page: int, end_page: int, max_span: int = 1_000_000) -> None:
    if start_page <= 0 or end_page <= 0:
        raise InvalidPageRange("start_page and end_page must be positive")
    if start_page > end_page:
        raise InvalidPageRange("start_page must be less than or equal to end_page")
    if end_page - start_page > max_span:
        raise InvalidPageRange(f"Page range too large (max {max_span:,} pages)")
    if end_page > MAX_PAGE_NUMBER:
        raise InvalidPageRange("End page number too large")


def storable(items: list[UpstreamItem]) -> list[UpstreamItem]:
    """Items that can be persisted; events without a parseable time are dropped."""

    return [item for item in items if item.time is not None and item.ticker]


class BulkIngestionCoordinator:
    def __init__(
        self,
        client: PageFetcher,
        store: RatingStore,
        *,
        concurrency: int = 30,
        batch_size: int = 1000,
        max_retries: int = 5,
        retry_page_offset: int = 13,
        max_page_span: int = 1_000_000,
        queue_size: int = 100,
    ) -> None:
        self._client = client
        self._store = store
        self._concurrency = concurrency
        self._batch_size = batch_size
        self._max_retries = max_retries
        self._retry_page_offset = retry_page_offset
        self._max_page_span = max_page_span
        self._queue_size = queue_size

    async def fetch_with_retry(self, page: int) -> list[UpstreamItem]:
        """Fetch ``page``; while it comes back empty, try ``page + attempt * offset``.

        Exhausting every attempt yields an empty list. Fetch errors propagate.
        """

        for attempt in range(self._max_retries):
            candidate = page + attempt * self._retry_page_offset
            result = await self._client.fetch_page(candidate)
            if result.items:
                if attempt:
                    logger.debug("Page %d recovered via page %d", page, candidate)
                return list(result.items)
        return []

    async def _worker(self, pages: Iterator[int], queue: asyncio.Queue) -> None:
        for page in pages:
            try:
                items = await self.fetch_with_retry(page)
            except Exception as exc:  # forwarded to the consumer, which aborts the job
                await queue.put(_PageOutcome(page=page, error=exc))
                return
            await queue.put(_PageOutcome(page=page, items=items))

    async def _flush(self, batch: list[UpstreamItem], result: BulkIngestResult) -> None:
        result.batches += 1
        inserted = await self._store.insert_batch(batch)
        result.inserted += inserted
        logger.info("Batch %d committed: %d of %d rows inserted", result.batches, inserted, len(batch))

    async def run(self, start_page: int, end_page: int) -> BulkIngestResult:
        """Replace the stored dataset with the contents of pages ``start_page..end_page``."""

        validate_page_range(start_page, end_page, self._max_page_span)
        await self._store.clear_all()

        started = time.monotonic()
        result = BulkIngestResult(start_page=start_page, end_page=end_page)
        total_pages = end_page - start_page + 1
        logger.info(
            "Starting bulk ingestion of pages %d-%d with %d workers",
            start_page,
            end_page,
            min(self._concurrency, total_pages),
        )

        pages = iter(range(start_page, end_page + 1))
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        workers = [
            asyncio.create_task(self._worker(pages, queue))
            for _ in range(min(self._concurrency, total_pages))
        ]
        buffer: list[UpstreamItem] = []
        try:
            while result.pages < total_pages:
                outcome: _PageOutcome = await queue.get()
                if outcome.error is not None:
                    logger.error("Aborting bulk ingestion at page %d: %s", outcome.page, outcome.error)
                    raise BulkIngestionError(outcome.page, outcome.error) from outcome.error
                result.pages += 1
                if outcome.items:
                    result.pages_with_data += 1
                    result.total_fetched += len(outcome.items)
                    kept = storable(outcome.items)
                    result.skipped_invalid += len(outcome.items) - len(kept)
                    buffer.extend(kept)
                while len(buffer) >= self._batch_size:
                    batch, buffer = buffer[: self._batch_size], buffer[self._batch_size :]
                    await self._flush(batch, result)
                if result.pages % PROGRESS_LOG_INTERVAL == 0:
                    logger.info(
                        "Progress: %d/%d pages, %d items fetched", result.pages, total_pages, result.total_fetched
                    )
            if buffer:
                await self._flush(buffer, result)
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

        result.stored_count = await self._store.count()
        result.elapsed_seconds = time.monotonic() - started
        logger.info(
            "Bulk ingestion finished in %.1fs: %d pages (%d with data), %d fetched, %d inserted, "
            "%d stored, %d duplicates skipped, %d without a valid time",
            result.elapsed_seconds,
            result.pages,
            result.pages_with_data,
            result.total_fetched,
            result.inserted,
            result.stored_count,
            result.duplicates_skipped,
            result.skipped_invalid,
        )
        return result


__all__ = [
    "BulkIngestResult",
    "BulkIngestionCoordinator",
    "BulkIngestionError",
    "InvalidPageRange",
    "MAX_PAGE_NUMBER",
    "PageFetcher",
    "storable",
    "validate_page_range",
]
