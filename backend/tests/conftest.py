import asyncio
import inspect
import pathlib
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from stock_recommender.db.session import Database  # noqa: E402
from stock_recommender.schemas.stocks import UpstreamItem  # noqa: E402
from stock_recommender.services.store import RatingStore  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            arguments = {name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames}
            loop.run_until_complete(test_function(**arguments))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


def build_item(**overrides: Any) -> UpstreamItem:
    values: dict[str, Any] = {
        "ticker": "AAPL",
        "company": "Apple Inc.",
        "brokerage": "Goldman Sachs",
        "action": "target raised by",
        "rating_from": "Hold",
        "rating_to": "Buy",
        "target_from": "$150.00",
        "target_to": "$180.00",
        "time": datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return UpstreamItem(**values)


@pytest.fixture
def make_item():
    return build_item


@pytest.fixture
def database_url(tmp_path: pathlib.Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'ratings.db'}"


@pytest.fixture
def open_store(database_url: str):
    """Async context manager yielding a RatingStore over a fresh SQLite file."""

    @asynccontextmanager
    async def _open():
        database = Database(database_url)
        await database.create_all()
        try:
            yield RatingStore(database)
        finally:
            await database.dispose()

    return _open
