"""Per-ticker reduction and ranking of scored rating events."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Sequence

from stock_recommender.analysis.scoring import RatingEventLike, ScoringWeights, score_event

MIN_RECOMMENDATION_SCORE = 5.0


@dataclass(frozen=True)
class Recommendation:
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

    def as_dict(self) -> dict[str, object]:
        return {
            "ticker": self.ticker,
            "company": self.company,
            "current_rating": self.current_rating,
            "target_price": self.target_price,
            "score": round(self.score, 2),
            "recommendation": self.recommendation,
            "reason": self.reason,
            "brokerage": self.brokerage,
            "price_change": round(self.price_change, 2),
            "rating_improvement": self.rating_improvement,
        }


def _recency_key(event: RatingEventLike) -> tuple[int, datetime, int]:
    # Events without a time sort before any timed event; the surrogate id breaks ties.
    moment = event.time
    if moment is None:
        return (0, datetime.min.replace(tzinfo=timezone.utc), getattr(event, "id", 0) or 0)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (1, moment, getattr(event, "id", 0) or 0)


def latest_event(events: Sequence[RatingEventLike]) -> RatingEventLike:
    """Pick the most recent event; identical or missing times fall back to the highest id."""

    return max(events, key=_recency_key)


def group_by_ticker(events: Iterable[RatingEventLike]) -> dict[str, list[RatingEventLike]]:
    grouped: dict[str, list[RatingEventLike]] = defaultdict(list)
    for event in events:
        grouped[event.ticker].append(event)
    return grouped


def rank_recommendations(candidates: Iterable[Recommendation], limit: int) -> list[Recommendation]:
    """Drop candidates under the inclusion gate and return the best ``limit`` of the rest.

    Equal scores are ordered by ticker so responses are reproducible.
    """

    eligible = [item for item in candidates if item.score >= MIN_RECOMMENDATION_SCORE]
    eligible.sort(key=lambda item: (-item.score, item.ticker))
    return eligible[:limit]


def build_recommendations(
    events: Iterable[RatingEventLike],
    weights: ScoringWeights,
    limit: int,
    now: datetime | None = None,
) -> list[Recommendation]:
    current = now or datetime.now(timezone.utc)
    candidates: list[Recommendation] = []
    for ticker, history in group_by_ticker(events).items():
        latest = latest_event(history)
        result = score_event(latest, history, weights, current)
        candidates.append(
            Recommendation(
                ticker=ticker,
                company=latest.company,
                current_rating=latest.rating_to,
                target_price=latest.target_to,
                score=result.score,
                recommendation=result.label,
                reason=result.reason,
                brokerage=latest.brokerage,
                price_change=result.price_change,
                rating_improvement=result.rating_improvement,
            )
        )
    return rank_recommendations(candidates, limit)


__all__ = [
    "MIN_RECOMMENDATION_SCORE",
    "Recommendation",
    "build_recommendations",
    "group_by_ticker",
    "latest_event",
    "rank_recommendations",
]
