"""Aggregate analytics over the stored rating events."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable

from sqlalchemy import case, func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from stock_recommender.db.session import Database
from stock_recommender.models import StockRating
from stock_recommender.schemas.metrics import (
    ActiveStock,
    BrokerageActivity,
    MarketSentiment,
    StockMetrics,
    TargetChanges,
)

logger = logging.getLogger(__name__)

METRICS_DESCRIPTION = "Comprehensive stock market analytics based on analyst ratings and target price changes"
RECENT_ACTIVITY_WINDOW = timedelta(days=7)


class MetricError(RuntimeError):
    def __init__(self, name: str, cause: BaseException):
        super().__init__(f"Failed to calculate {name}: {cause}")
        self.name = name


def _matches_any(column, *keywords: str):
    return or_(*(column.ilike(f"%{keyword}%") for keyword in keywords))


def _count_when(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


def _percentage(part: int, total: int) -> float:
    return part / total * 100 if total else 0.0


class MetricsService:
    """Runs every aggregate concurrently, each query in its own session."""

    def __init__(self, database: Database):
        self._database = database

    async def _run(self, name: str, query: Callable[[Any], Awaitable[Any]]) -> Any:
        try:
            async with self._database.session() as session:
                return await query(session)
        except SQLAlchemyError as exc:
            logger.error("Metric %s failed: %s", name, exc)
            raise MetricError(name, exc) from exc

    async def total_records(self, session) -> int:
        return int(await session.scalar(select(func.count()).select_from(StockRating)) or 0)

    async def target_changes(self, session) -> TargetChanges:
        action = StockRating.action
        statement = select(
            _count_when(_matches_any(action, "raised", "increase", "upgrade")),
            _count_when(_matches_any(action, "lowered", "decrease", "downgrade")),
            _count_when(_matches_any(action, "maintained", "reiterated")),
        )
        raised, lowered, maintained = (await session.execute(statement)).one()
        return TargetChanges(raised=int(raised), lowered=int(lowered), maintained=int(maintained))

    async def rating_distribution(self, session) -> dict[str, int]:
        count = func.count().label("count")
        statement = (
            select(StockRating.rating_to, count)
            .where(StockRating.rating_to != "")
            .group_by(StockRating.rating_to)
            .order_by(count.desc(), StockRating.rating_to)
            .limit(10)
        )
        return {rating: int(total) for rating, total in (await session.execute(statement)).all()}

    async def top_brokerages(self, session) -> list[BrokerageActivity]:
        count = func.count().label("activity")
        statement = (
            select(StockRating.brokerage, count)
            .where(StockRating.brokerage != "")
            .group_by(StockRating.brokerage)
            .order_by(count.desc(), StockRating.brokerage)
            .limit(10)
        )
        rows = (await session.execute(statement)).all()
        return [BrokerageActivity(name=name, activity=int(total)) for name, total in rows]

    async def most_active_stocks(self, session) -> list[ActiveStock]:
        count = func.count().label("rating_count")
        statement = (
            select(StockRating.ticker, StockRating.company, count)
            .where(StockRating.ticker != "")
            .group_by(StockRating.ticker, StockRating.company)
            .order_by(count.desc(), StockRating.ticker)
            .limit(15)
        )
        rows = (await session.execute(statement)).all()
        return [ActiveStock(ticker=ticker, company=company, rating_count=int(total)) for ticker, company, total in rows]

    async def market_sentiment(self, session) -> MarketSentiment:
        rating = StockRating.rating_to
        statement = select(
            _count_when(_matches_any(rating, "buy", "strong")),
            _count_when(_matches_any(rating, "sell", "underperform")),
            _count_when(_matches_any(rating, "hold", "neutral")),
        ).where(rating != "")
        bullish, bearish, neutral = (int(value) for value in (await session.execute(statement)).one())
        total = bullish + bearish + neutral
        return MarketSentiment(
            bullish_count=bullish,
            bearish_count=bearish,
            neutral_count=neutral,
            bullish_percentage=_percentage(bullish, total),
            bearish_percentage=_percentage(bearish, total),
            neutral_percentage=_percentage(neutral, total),
        )

    async def recent_activity(self, session) -> int:
        since = datetime.now(timezone.utc) - RECENT_ACTIVITY_WINDOW
        statement = select(func.count()).select_from(StockRating).where(StockRating.created_at >= since)
        return int(await session.scalar(statement) or 0)

    async def collect(self) -> StockMetrics:
        names = (
            "total_records",
            "target_changes",
            "rating_distribution",
            "top_brokerages",
            "most_active_stocks",
            "market_sentiment",
            "recent_activity",
        )
        values = await asyncio.gather(*(self._run(name, getattr(self, name)) for name in names))
        return StockMetrics(
            **dict(zip(names, values)),
            generated_at=datetime.now(timezone.utc),
            description=METRICS_DESCRIPTION,
        )


__all__ = ["METRICS_DESCRIPTION", "MetricError", "MetricsService"]
