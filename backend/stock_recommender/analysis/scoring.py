"""Weighted heuristic score for a single analyst rating event.

Every event starts at the neutral midpoint 5.0. Four independent signals
(target price move, rating movement, action direction and recency/consensus)
each contribute a raw adjustment that is multiplied by its configured weight.
The result is clamped to ``[0, 10]``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol, Sequence

from stock_recommender.analysis.parsing import (
    Unparseable,
    is_buy_like,
    is_rating_improvement,
    is_strong_buy_like,
    parse_price,
)
from stock_recommender.core.errors import ConfigurationError

BASE_SCORE = 5.0
MIN_SCORE = 0.0
MAX_SCORE = 10.0
SCORE_PRECISION = 2
WEIGHT_TOLERANCE = 0.001
RECENT_WINDOW = timedelta(hours=24)


class RatingEventLike(Protocol):
    ticker: str
    company: str
    brokerage: str
    action: str
    rating_from: str
    rating_to: str
    target_from: str
    target_to: str
    time: datetime | None


@dataclass(frozen=True)
class ScoringWeights:
    target_price: float = 0.4
    rating: float = 0.3
    action: float = 0.2
    timing: float = 0.1

    @property
    def total(self) -> float:
        return self.target_price + self.rating + self.action + self.timing

    def validate(self) -> "ScoringWeights":
        """Raise :class:`ConfigurationError` unless the weights sum to 1.0."""

        if math.fabs(self.total - 1.0) > WEIGHT_TOLERANCE:
            raise ConfigurationError(f"Scoring weights must sum to 100%, got {self.total * 100:.1f}%")
        return self

    @classmethod
    def from_settings(cls, settings) -> "ScoringWeights":
        return cls(
            target_price=settings.scoring_weight_target_price,
            rating=settings.scoring_weight_rating,
            action=settings.scoring_weight_action,
            timing=settings.scoring_weight_timing,
        )


DEFAULT_WEIGHTS = ScoringWeights()


@dataclass(frozen=True)
class ScoreResult:
    score: float
    label: str
    reason: str
    price_change: float
    rating_improvement: bool


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def target_price_change(target_from: str, target_to: str) -> float:
    """Percent change between the two targets, 0.0 when either side is unusable."""

    start = parse_price(target_from)
    end = parse_price(target_to)
    if isinstance(start, Unparseable) or isinstance(end, Unparseable) or start <= 0:
        return 0.0
    return (end - start) / start * 100


def target_price_signal(target_from: str, target_to: str) -> float:
    start = parse_price(target_from)
    end = parse_price(target_to)
    if isinstance(start, Unparseable) or isinstance(end, Unparseable):
        return 0.0
    if start > 0 and end > start:
        increase = (end - start) / start * 100
        if increase > 20:
            return 3.0
        if increase > 10:
            return 2.0
        if increase > 5:
            return 1.0
        return 0.0
    if end < start:
        return -2.0
    return 0.0


def rating_signal(rating_from: str, rating_to: str) -> float:
    value = 0.0
    if is_rating_improvement(rating_from, rating_to):
        value += 2.0
    if is_strong_buy_like(rating_to):
        value += 1.5
    elif is_buy_like(rating_to):
        value += 1.0
    return value


def action_signal(action: str, rating_to: str) -> float:
    lowered = (action or "").lower()
    if "raised" in lowered or "upgrade" in lowered:
        return 1.5
    if "initiated" in lowered and is_buy_like(rating_to):
        return 1.0
    if "lowered" in lowered or "downgrade" in lowered:
        return -1.5
    return 0.0


def timing_signal(event_time: datetime | None, sibling_count: int, now: datetime) -> float:
    value = 0.0
    if event_time is not None:
        age = _as_utc(now) - _as_utc(event_time)
        if age < RECENT_WINDOW:
            value += 0.5
    if sibling_count > 1:
        value += 0.5
    return value


def recommendation_label(score: float) -> str:
    if score >= 8.5:
        return "Strong Buy"
    if score >= 7.0:
        return "Buy"
    if score >= 6.0:
        return "Moderate Buy"
    return "Hold"


def recommendation_reason(event: RatingEventLike, price_change: float, score: float) -> str:
    reasons: list[str] = []
    if price_change > 10:
        reasons.append(f"Target raised by {price_change:.1f}%")
    if is_rating_improvement(event.rating_from, event.rating_to):
        reasons.append(f"Upgraded to {event.rating_to}")
    if "initiated" in (event.action or "").lower():
        reasons.append("New analyst coverage")
    if score >= 8.0:
        reasons.append("Strong analyst sentiment")
    if not reasons:
        return "Positive analyst outlook"
    return ", ".join(reasons)


def compute_score(
    event: RatingEventLike,
    history: Sequence[RatingEventLike],
    weights: ScoringWeights,
    now: datetime | None = None,
) -> float:
    """Return the clamped score of ``event`` given every event recorded for its ticker.

    Rounded to two decimals; labels and the inclusion gate use the rounded value.
    """

    current = now or datetime.now(timezone.utc)
    score = BASE_SCORE
    score += target_price_signal(event.target_from, event.target_to) * weights.target_price
    score += rating_signal(event.rating_from, event.rating_to) * weights.rating
    score += action_signal(event.action, event.rating_to) * weights.action
    score += timing_signal(event.time, len(history), current) * weights.timing
    return round(min(MAX_SCORE, max(MIN_SCORE, score)), SCORE_PRECISION)


def score_event(
    event: RatingEventLike,
    history: Sequence[RatingEventLike],
    weights: ScoringWeights,
    now: datetime | None = None,
) -> ScoreResult:
    score = compute_score(event, history, weights, now)
    change = target_price_change(event.target_from, event.target_to)
    return ScoreResult(
        score=score,
        label=recommendation_label(score),
        reason=recommendation_reason(event, change, score),
        price_change=change,
        rating_improvement=is_rating_improvement(event.rating_from, event.rating_to),
    )


__all__ = [
    "DEFAULT_WEIGHTS",
    "RatingEventLike",
    "ScoreResult",
    "ScoringWeights",
    "action_signal",
    "compute_score",
    "rating_signal",
    "recommendation_label",
    "recommendation_reason",
    "score_event",
    "target_price_change",
    "target_price_signal",
    "timing_signal",
]
