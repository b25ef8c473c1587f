"""Best-effort parsing of the free-text fields delivered by upstream."""

from __future__ import annotations

import math
import re
from typing import NamedTuple, Union

_PRICE_RE = re.compile(r"^\d+(\.\d+)?$")


class Unparseable(NamedTuple):
    """A value that could not be parsed, carrying the zero value callers fall back to."""

    raw: str
    value: float = 0.0


ParsedPrice = Union[float, Unparseable]


def parse_price(raw: str | None) -> ParsedPrice:
    """Parse a currency string such as ``"$1,250.50"``.

    Dollar signs, thousands separators and surrounding whitespace are stripped.
    Anything else returns :class:`Unparseable` instead of raising.
    """

    text = (raw or "").strip().replace("$", "").replace(",", "")
    if not _PRICE_RE.match(text):
        return Unparseable(raw or "")
    value = float(text)
    if not math.isfinite(value):
        return Unparseable(raw or "")
    return value


def price_or_zero(raw: str | None) -> float:
    parsed = parse_price(raw)
    if isinstance(parsed, Unparseable):
        return parsed.value
    return parsed


RATING_RANKS: dict[str, int] = {
    "strong sell": 1,
    "sell": 2,
    "underperform": 3,
    "underweight": 3,
    "hold": 4,
    "neutral": 5,
    "outperform": 6,
    "buy": 7,
    "overweight": 7,
    "strong buy": 8,
}


def rating_rank(rating: str | None) -> int:
    """Rank of a rating label; unknown labels rank 0."""

    return RATING_RANKS.get((rating or "").strip().lower(), 0)


def is_rating_improvement(rating_from: str | None, rating_to: str | None) -> bool:
    return rating_rank(rating_to) > rating_rank(rating_from)


def is_buy_like(rating: str | None) -> bool:
    lowered = (rating or "").lower()
    return "buy" in lowered or "outperform" in lowered


def is_strong_buy_like(rating: str | None) -> bool:
    lowered = (rating or "").lower()
    return "strong buy" in lowered or "overweight" in lowered


__all__ = [
    "ParsedPrice",
    "RATING_RANKS",
    "Unparseable",
    "is_buy_like",
    "is_strong_buy_like",
    "is_rating_improvement",
    "parse_price",
    "price_or_zero",
    "rating_rank",
]
