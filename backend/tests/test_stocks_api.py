from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from stock_recommender.config import AppSettings
from stock_recommender.core.errors import ConfigurationError
from stock_recommender.db.session import Database
from stock_recommender.main import create_app
from stock_recommender.providers.llm import Completion, LLMError
from stock_recommender.schemas.stocks import UpstreamPage

AAPL_EVENT = {
    "ticker": "AAPL",
    "company": "Apple Inc.",
    "brokerage": "Goldman Sachs",
    "action": "target raised by",
    "rating_from": "Hold",
    "rating_to": "Buy",
    "target_from": "$150.00",
    "target_to": "$180.00",
    "time": "2025-01-10T12:00:00Z",
}


class StubUpstream:
    def __init__(self, pages: dict[int, list[dict]] | None = None):
        self.pages = pages or {}
        self.calls: list[int] = []

    async def fetch_page(self, page: int) -> UpstreamPage:
        self.calls.append(page)
        return UpstreamPage.model_validate({"items": self.pages.get(page, []), "next_page": ""})


class StubLLM:
    def __init__(self, text: str = "Markets look constructive.", error: Exception | None = None):
        self.text = text
        self.error = error
        self.calls = 0

    async def complete(self, messages, *, max_tokens, temperature=0.7):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return Completion(text=self.text, tokens_used=64)


def _settings(database_url: str, **overrides) -> AppSettings:
    return AppSettings(database_url=database_url, api_token="test-token", bulk_concurrency=4, **overrides)


@asynccontextmanager
async def _api(database_url: str, upstream=None, llm=None):
    database = Database(database_url)
    upstream = upstream or StubUpstream()
    app = create_app(
        _settings(database_url),
        database=database,
        upstream=upstream,
        bulk_upstream=upstream,
        llm=llm or StubLLM(),
    )
    try:
        async with app.router.lifespan_context(app):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                yield client
    finally:
        await database.dispose()


def _event(**overrides) -> dict:
    return {**AAPL_EVENT, **overrides}


def test_misconfigured_weights_abort_startup(database_url):
    with pytest.raises(ConfigurationError):
        create_app(_settings(database_url, scoring_weight_target_price=0.5))


@pytest.mark.asyncio
async def test_health(database_url):
    async with _api(database_url) as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_fetch_page_then_recommend(database_url):
    upstream = StubUpstream({1: [AAPL_EVENT]})
    async with _api(database_url, upstream=upstream) as client:
        fetched = await client.post("/api/stocks", json={"page": 1})
        assert fetched.status_code == 200
        assert fetched.json()["stored"] == 1

        again = await client.post("/api/stocks", json={"page": 1})
        assert again.json()["stored"] == 0

        response = await client.get("/api/stocks/recommendations", params={"limit": 10})

    assert response.status_code == 200
    payload = response.json()
    assert payload["total_analyzed"] == 1
    (top,) = payload["recommendations"]
    assert top["ticker"] == "AAPL"
    assert top["recommendation"] == "Buy"
    assert top["score"] == pytest.approx(7.0)
    assert top["price_change"] == pytest.approx(20.0)
    assert top["rating_improvement"] is True
    assert top["reason"] == "Target raised by 20.0%, Upgraded to Buy"


@pytest.mark.asyncio
async def test_recent_upgrade_with_older_neutral_event(database_url):
    fresh = _event(time=datetime.now(timezone.utc).isoformat())
    stale = _event(
        brokerage="Morgan Stanley",
        action="reiterated by",
        rating_from="Hold",
        rating_to="Hold",
        target_to="$150.00",
        time="2024-12-01T09:30:00Z",
    )
    async with _api(database_url, upstream=StubUpstream({1: [stale, fresh]})) as client:
        await client.post("/api/stocks", json={"page": 1})
        response = await client.get("/api/stocks/recommendations", params={"limit": 10})

    payload = response.json()
    assert payload["total_analyzed"] == 2
    (top,) = payload["recommendations"]
    # 5 + 2*0.4 + 3*0.3 + 1.5*0.2 + (0.5 recent + 0.5 consensus)*0.1
    assert top["score"] == pytest.approx(7.1)
    assert top["recommendation"] == "Buy"
    assert top["brokerage"] == "Goldman Sachs"
    assert top["current_rating"] == "Buy"
    assert top["target_price"] == "$180.00"


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{}, {"page": 0}, {"page": -1}])
async def test_fetch_page_rejects_bad_page(database_url, payload):
    async with _api(database_url) as client:
        response = await client.post("/api/stocks", json=payload)
    assert response.status_code == 400
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_invalid_json_body(database_url):
    async with _api(database_url) as client:
        response = await client.post(
            "/api/stocks/list", content="{not json", headers={"Content-Type": "application/json"}
        )
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid JSON format in request body"}


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, 51])
async def test_recommendation_limit_out_of_range(database_url, limit):
    async with _api(database_url) as client:
        response = await client.get("/api/stocks/recommendations", params={"limit": limit})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid limit parameter. Must be between 1 and 50"}


@pytest.mark.asyncio
async def test_bulk_replaces_dataset(database_url):
    pages = {
        1: [_event(ticker="AAPL"), _event(ticker="MSFT")],
        2: [_event(ticker="TSLA"), _event(ticker="AAPL")],
        3: [_event(ticker="NVDA", time=None)],
    }
    async with _api(database_url, upstream=StubUpstream(pages)) as client:
        response = await client.post("/api/stocks/bulk", json={"start_page": 1, "end_page": 3})
        assert response.status_code == 200
        payload = response.json()
        assert payload["pages_fetched"] == "1-3"
        assert payload["pages_with_data"] == 3
        assert payload["total_fetched"] == 5
        assert payload["total_inserted"] == 3
        assert payload["total_stocks"] == 3

        listing = await client.post("/api/stocks/list", json={"page_number": 1, "page_length": 10})
        assert listing.json()["pagination"]["total_records"] == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("body", "message"),
    [
        ({"start_page": 10, "end_page": 5}, "start_page must be less than or equal to end_page"),
        ({"start_page": 1, "end_page": 2_000_000}, "Page range too large (max 1,000,000 pages)"),
    ],
)
async def test_bulk_rejects_bad_range_without_clearing(database_url, body, message):
    upstream = StubUpstream({1: [AAPL_EVENT]})
    async with _api(database_url, upstream=upstream) as client:
        await client.post("/api/stocks", json={"page": 1})
        response = await client.post("/api/stocks/bulk", json=body)
        assert response.status_code == 400
        assert response.json() == {"error": message}

        listing = await client.post("/api/stocks/list", json={"page_number": 1, "page_length": 10})
        assert listing.json()["pagination"]["total_records"] == 1


@pytest.mark.asyncio
async def test_list_validation_and_pagination(database_url):
    pages = {1: [_event(ticker=f"T{index:02d}") for index in range(25)]}
    async with _api(database_url, upstream=StubUpstream(pages)) as client:
        await client.post("/api/stocks", json={"page": 1})

        invalid = await client.post("/api/stocks/list", json={"page_number": 0, "page_length": 10})
        assert invalid.status_code == 400
        too_long = await client.post("/api/stocks/list", json={"page_number": 1, "page_length": 1001})
        assert too_long.status_code == 400

        response = await client.post("/api/stocks/list", json={"page_number": 3, "page_length": 10})

    assert response.status_code == 200
    payload = response.json()
    assert len(payload["data"]) == 5
    assert payload["pagination"] == {
        "page_number": 3,
        "page_length": 10,
        "total_records": 25,
        "total_pages": 3,
        "has_next": False,
        "has_previous": True,
    }


@pytest.mark.asyncio
async def test_search_with_filters(database_url):
    pages = {
        1: [
            _event(),
            _event(ticker="MSFT", company="Microsoft", action="downgraded by", rating_to="Sell", target_to="$90.00"),
            _event(ticker="TSLA", company="Tesla", target_to="N/A"),
        ]
    }
    async with _api(database_url, upstream=StubUpstream(pages)) as client:
        await client.post("/api/stocks", json={"page": 1})

        response = await client.post(
            "/api/stocks/search",
            json={"page_number": 1, "search_term": "apple", "action": "all", "target_to_min": 100},
        )
        assert response.status_code == 200
        payload = response.json()
        assert [row["ticker"] for row in payload["data"]] == ["AAPL"]
        assert payload["applied_filters"] == {"search_term": "apple", "target_to_min": 100}
        assert payload["pagination"]["page_length"] == 20

        downgrades = await client.post("/api/stocks/search", json={"action": "DOWNGRADED BY"})
        assert [row["ticker"] for row in downgrades.json()["data"]] == ["MSFT"]

        options = await client.get("/api/stocks/filter-options")
        assert options.json() == {
            "actions": ["downgraded by", "target raised by"],
            "ratings_from": ["Hold"],
            "ratings_to": ["Buy", "Sell"],
        }
        actions = await client.get("/api/stocks/actions")
        assert actions.json() == {"actions": ["downgraded by", "target raised by"]}


@pytest.mark.asyncio
async def test_metrics(database_url):
    pages = {
        1: [
            _event(),
            _event(ticker="MSFT", brokerage="UBS", action="downgraded by", rating_to="Sell"),
            _event(ticker="AAPL", brokerage="UBS", action="reiterated by", rating_to="Hold"),
        ]
    }
    async with _api(database_url, upstream=StubUpstream(pages)) as client:
        await client.post("/api/stocks", json={"page": 1})
        response = await client.get("/api/stocks/metrics")

    assert response.status_code == 200
    metrics = response.json()["metrics"]
    assert metrics["total_records"] == 3
    assert metrics["target_changes"] == {"raised": 1, "lowered": 1, "maintained": 1}
    assert metrics["rating_distribution"] == {"Buy": 1, "Hold": 1, "Sell": 1}
    assert metrics["top_brokerages"][0] == {"name": "UBS", "activity": 2}
    assert metrics["most_active_stocks"][0]["ticker"] == "AAPL"
    assert metrics["market_sentiment"]["bullish_count"] == 1
    assert metrics["recent_activity"] == 3


@pytest.mark.asyncio
async def test_summary_without_data_skips_llm(database_url):
    llm = StubLLM()
    async with _api(database_url, llm=llm) as client:
        response = await client.get("/api/stocks/summary")
    assert response.status_code == 200
    assert response.json()["tokens_used"] == 0
    assert response.json()["summary"].startswith("No stock recommendations available")
    assert llm.calls == 0


@pytest.mark.asyncio
async def test_summary_with_data_calls_llm(database_url):
    llm = StubLLM()
    async with _api(database_url, upstream=StubUpstream({1: [AAPL_EVENT]}), llm=llm) as client:
        await client.post("/api/stocks", json={"page": 1})
        response = await client.get("/api/stocks/summary")
    assert response.json()["summary"] == "Markets look constructive."
    assert response.json()["tokens_used"] == 64
    assert llm.calls == 1


@pytest.mark.asyncio
async def test_chat_round_trip(database_url):
    async with _api(database_url, upstream=StubUpstream({1: [AAPL_EVENT]})) as client:
        await client.post("/api/stocks", json={"page": 1})
        response = await client.post("/api/stocks/chat", json={"message": "How is AAPL doing?"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["response"] == "Markets look constructive."
    assert payload["updated_memory"]["key_topics"] == ["AAPL"]
    assert "Apple Inc. (AAPL)" in payload["context_used"]


@pytest.mark.asyncio
async def test_chat_requires_message(database_url):
    async with _api(database_url) as client:
        response = await client.post("/api/stocks/chat", json={"message": ""})
    assert response.status_code == 400
    assert response.json() == {"error": "Message is required"}


@pytest.mark.asyncio
async def test_llm_failure_is_reported(database_url):
    llm = StubLLM(error=LLMError("Failed to generate response: quota exceeded"))
    async with _api(database_url, llm=llm) as client:
        response = await client.post("/api/stocks/chat", json={"message": "Top picks?"})
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to generate response: quota exceeded"}
