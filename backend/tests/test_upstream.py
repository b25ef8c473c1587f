from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from stock_recommender.providers.upstream import (
    UpstreamClient,
    UpstreamDecodeError,
    UpstreamTransportError,
)
from stock_recommender.schemas.stocks import parse_event_time

BASE_URL = "https://upstream.example.com/swechallenge/list"

PAGE_PAYLOAD = {
    "items": [
        {
            "ticker": "aapl ",
            "company": "Apple Inc.",
            "brokerage": "Goldman Sachs",
            "action": "target raised by",
            "rating_from": "Hold",
            "rating_to": "Buy",
            "target_from": "$150.00",
            "target_to": "$180.00",
            "time": "2025-01-10T12:00:00.123456789Z",
        },
        {"ticker": "MSFT", "company": None, "time": "not-a-time"},
    ],
    "next_page": "AAPL",
}


def _client(handler) -> UpstreamClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return UpstreamClient(BASE_URL, "secret-token", client=http_client)


@pytest.mark.asyncio
async def test_fetch_page_sends_token_and_page_parameter():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=PAGE_PAYLOAD)

    client = _client(handler)
    page = await client.fetch_page(7)

    request = seen[0]
    assert request.headers["Authorization"] == "Token secret-token"
    assert request.headers["Accept"] == "application/json"
    assert request.url.params["next_page"] == "7"

    assert page.next_page == "AAPL"
    first, second = page.items
    assert first.ticker == "AAPL"
    assert first.time is not None and first.time.microsecond == 123456
    assert second.company == ""
    assert second.time is None


@pytest.mark.asyncio
async def test_non_success_status_is_an_empty_page():
    client = _client(lambda request: httpx.Response(503, text="unavailable"))
    page = await client.fetch_page(3)
    assert page.items == []
    assert page.next_page == ""


@pytest.mark.asyncio
async def test_null_items_decode_as_empty_list():
    client = _client(lambda request: httpx.Response(200, json={"items": None, "next_page": None}))
    page = await client.fetch_page(1)
    assert page.items == []


@pytest.mark.asyncio
async def test_invalid_json_raises_decode_error():
    client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(UpstreamDecodeError):
        await client.fetch_page(1)


@pytest.mark.asyncio
async def test_non_object_body_raises_decode_error():
    client = _client(lambda request: httpx.Response(200, json=[1, 2, 3]))
    with pytest.raises(UpstreamDecodeError):
        await client.fetch_page(1)


@pytest.mark.asyncio
async def test_connection_failure_raises_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    with pytest.raises(UpstreamTransportError) as excinfo:
        await client.fetch_page(9)
    assert "page 9" in str(excinfo.value)


@pytest.mark.parametrize(
    ("raw", "microsecond"),
    [
        ("2025-01-10T12:00:05.5Z", 500000),
        ("2025-01-10T12:00:05.12345Z", 123450),
        ("2025-01-10T12:00:05.123456789Z", 123456),
        ("2025-01-10T12:00:05Z", 0),
    ],
)
def test_event_time_accepts_any_fraction_length(raw, microsecond):
    parsed = parse_event_time(raw)
    assert parsed is not None
    assert parsed.second == 5
    assert parsed.microsecond == microsecond
    assert parsed.utcoffset() == timedelta(0)
