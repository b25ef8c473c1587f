"""CLI wrapper for bulk rating ingestion."""

from __future__ import annotations

import argparse
import asyncio

from stock_recommender.config import get_settings
from stock_recommender.core.logging import setup_logging
from stock_recommender.db.session import Database
from stock_recommender.ingest.bulk import BulkIngestionCoordinator
from stock_recommender.providers.upstream import UpstreamClient
from stock_recommender.services.store import RatingStore


async def _run(start_page: int, end_page: int) -> None:
    settings = get_settings()
    database = Database(settings.resolved_database_url())
    await database.create_all()
    async with UpstreamClient(
        settings.upstream_base_url,
        settings.api_token,
        timeout_seconds=settings.bulk_request_timeout_seconds,
    ) as client:
        coordinator = BulkIngestionCoordinator(
            client,
            RatingStore(database),
            concurrency=settings.bulk_concurrency,
            batch_size=settings.bulk_batch_size,
            max_retries=settings.bulk_max_retries,
            retry_page_offset=settings.bulk_retry_page_offset,
            max_page_span=settings.bulk_max_page_span,
        )
        try:
            result = await coordinator.run(start_page, end_page)
        finally:
            await database.dispose()
    print(
        f"Fetched {result.total_fetched} ratings from pages {start_page}-{end_page}; "
        f"{result.stored_count} stored in {result.batches} batches"
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Replace stored ratings with a range of upstream pages")
    parser.add_argument("--start-page", type=int, required=True)
    parser.add_argument("--end-page", type=int, required=True)
    args = parser.parse_args()
    setup_logging()
    asyncio.run(_run(args.start_page, args.end_page))


if __name__ == "__main__":
    main()
