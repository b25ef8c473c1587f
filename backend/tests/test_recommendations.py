from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from stock_recommender.analysis.recommendations import (
    Recommendation,
    build_recommendations,
    latest_event,
    rank_recommendations,
)
from stock_recommender.analysis.scoring import DEFAULT_WEIGHTS

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@dataclass
class Event:
    id: int
    ticker: str = "AAPL"
    company: str = "Apple Inc."
    brokerage: str = "Goldman Sachs"
    action: str = "reiterated by"
    rating_from: str = "Buy"
    rating_to: str = "Buy"
    target_from: str = "$150.00"
    target_to: str = "$150.00"
    time: datetime | None = NOW


def _candidate(ticker: str, score: float) -> Recommendation:
    return Recommendation(
        ticker=ticker,
        company=ticker,
        current_rating="Hold",
        target_price="$1",
        score=score,
        recommendation="Hold",
        reason="Positive analyst outlook",
        brokerage="",
        price_change=0.0,
        rating_improvement=False,
    )


def test_gate_excludes_below_five_and_keeps_exactly_five():
    ranked = rank_recommendations([_candidate("LOW", 4.9), _candidate("EDGE", 5.0)], limit=10)
    assert [item.ticker for item in ranked] == ["EDGE"]


def test_ranking_is_descending_with_ticker_tie_break_and_limit():
    candidates = [_candidate("MSFT", 6.0), _candidate("AAPL", 7.5), _candidate("AMZN", 6.0), _candidate("TSLA", 9.0)]
    ranked = rank_recommendations(candidates, limit=3)
    assert [item.ticker for item in ranked] == ["TSLA", "AAPL", "AMZN"]


def test_latest_event_prefers_newest_time():
    older = Event(id=5, time=NOW - timedelta(days=1))
    newer = Event(id=1, time=NOW)
    assert latest_event([older, newer]) is newer


def test_latest_event_breaks_identical_times_by_highest_id():
    first = Event(id=3)
    second = Event(id=8)
    assert latest_event([second, first]) is second
    assert latest_event([first, second]) is second


def test_events_without_time_lose_to_timed_events():
    untimed = Event(id=99, time=None)
    timed = Event(id=1, time=NOW - timedelta(days=30))
    assert latest_event([untimed, timed]) is timed
    assert latest_event([Event(id=2, time=None), untimed]) is untimed


def test_build_recommendations_scores_latest_event_per_ticker():
    events = [
        Event(id=1, time=NOW - timedelta(days=3), rating_from="Buy", rating_to="Hold"),
        Event(
            id=2,
            action="target raised by",
            rating_from="Hold",
            rating_to="Buy",
            target_from="$150.00",
            target_to="$180.00",
        ),
        Event(id=3, ticker="XYZ", company="Xyz Corp", action="downgraded by", rating_to="Sell", target_to="$90.00"),
    ]
    ranked = build_recommendations(events, DEFAULT_WEIGHTS, limit=10, now=NOW)

    assert [item.ticker for item in ranked] == ["AAPL"]
    top = ranked[0]
    assert top.recommendation == "Buy"
    assert top.rating_improvement is True
    assert top.current_rating == "Buy"
    assert top.target_price == "$180.00"
    assert top.as_dict()["score"] == 7.1
