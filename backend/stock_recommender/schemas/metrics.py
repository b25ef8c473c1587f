"""Aggregate analytics response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class TargetChanges(BaseModel):
    raised: int
    lowered: int
    maintained: int


class BrokerageActivity(BaseModel):
    name: str
    activity: int


class ActiveStock(BaseModel):
    ticker: str
    company: str
    rating_count: int


class MarketSentiment(BaseModel):
    bullish_count: int
    bearish_count: int
    neutral_count: int
    bullish_percentage: float
    bearish_percentage: float
    neutral_percentage: float


class StockMetrics(BaseModel):
    total_records: int
    target_changes: TargetChanges
    rating_distribution: dict[str, int]
    top_brokerages: list[BrokerageActivity]
    most_active_stocks: list[ActiveStock]
    market_sentiment: MarketSentiment
    recent_activity: int
    generated_at: datetime
    description: str


class MetricsResponse(BaseModel):
    success: bool
    metrics: StockMetrics


__all__ = [
    "ActiveStock",
    "BrokerageActivity",
    "MarketSentiment",
    "MetricsResponse",
    "StockMetrics",
    "TargetChanges",
]
