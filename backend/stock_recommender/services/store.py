"""Persistence of analyst rating events."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from sqlalchemy import Float, Select, and_, case, cast, delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import ColumnElement

from stock_recommender.db.session import Database
from stock_recommender.models import IDENTITY_COLUMNS, StockRating
from stock_recommender.schemas.stocks import UpstreamItem

logger = logging.getLogger(__name__)

SEARCHABLE_COLUMNS = ("ticker", "company", "brokerage", "action", "rating_from", "rating_to")
DISTINCT_COLUMNS = ("action", "rating_from", "rating_to")
FILTER_WILDCARD = "all"


class StoreError(RuntimeError):
    """Raised when the database rejects a read or write."""


@dataclass(frozen=True)
class SearchFilters:
    search_term: str | None = None
    action: str | None = None
    rating_from: str | None = None
    rating_to: str | None = None
    target_from_min: float | None = None
    target_from_max: float | None = None
    target_to_min: float | None = None
    target_to_max: float | None = None


def _row_values(item: UpstreamItem) -> dict[str, Any]:
    return {
        "ticker": item.ticker,
        "company": item.company,
        "brokerage": item.brokerage,
        "action": item.action,
        "rating_from": item.rating_from,
        "rating_to": item.rating_to,
        "target_from": item.target_from,
        "target_to": item.target_to,
        "time": item.time,
    }


def _active(value: str | None) -> bool:
    return bool(value) and value.strip().lower() != FILTER_WILDCARD


def _active_bound(value: float | None) -> bool:
    return value is not None and value > 0


class RatingStore:
    """Reads and writes ``stock_ratings`` rows; every call opens its own session."""

    def __init__(self, database: Database):
        self._database = database

    def _insert_statement(self, values: dict[str, Any]):
        dialect = self._database.dialect_name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise StoreError(f"Unsupported database dialect: {dialect}")
        return insert(StockRating).values(**values).on_conflict_do_nothing(index_elements=list(IDENTITY_COLUMNS))

    def price_expression(self, column: ColumnElement) -> ColumnElement:
        """Numeric value of a currency column, NULL when the text is not a plain number."""

        cleaned = func.replace(func.replace(column, "$", ""), ",", "")
        if self._database.dialect_name == "postgresql":
            guard = cleaned.op("~")(r"^[0-9]+(\.[0-9]+)?$")
        else:
            # GLOB has no optional groups; these together match ^[0-9]+(\.[0-9]+)?$
            guard = and_(
                cleaned.op("GLOB")("[0-9]*"),
                cleaned.op("NOT GLOB")("*[^0-9.]*"),
                cleaned.op("NOT GLOB")("*.*.*"),
                cleaned.op("NOT GLOB")("*."),
            )
        return case((guard, cast(cleaned, Float)), else_=None)

    async def insert_if_absent(self, item: UpstreamItem) -> bool:
        """Insert one event; returns False when an identical event already exists."""

        try:
            async with self._database.session() as session:
                result = await session.execute(self._insert_statement(_row_values(item)))
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to insert rating for {item.ticker}: {exc}") from exc
        return bool(result.rowcount)

    async def insert_batch(self, items: Sequence[UpstreamItem]) -> int:
        """Insert events inside one transaction and return how many were new.

        Duplicates are skipped. Any other failure rolls back the whole batch.
        """

        if not items:
            return 0
        inserted = 0
        try:
            async with self._database.session() as session:
                async with session.begin():
                    for index, item in enumerate(items, start=1):
                        result = await session.execute(self._insert_statement(_row_values(item)))
                        inserted += result.rowcount or 0
                        if index % 200 == 0:
                            logger.debug("Batch progress: %d/%d rows processed", index, len(items))
        except SQLAlchemyError as exc:
            logger.error("Batch of %d rows rolled back: %s", len(items), exc)
            raise StoreError(f"Batch insert failed: {exc}") from exc
        return inserted

    async def clear_all(self) -> None:
        try:
            async with self._database.session() as session:
                await session.execute(delete(StockRating))
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to clear stock ratings: {exc}") from exc
        logger.info("Cleared all stock ratings")

    async def count(self) -> int:
        return await self._scalar(select(func.count()).select_from(StockRating))

    async def _scalar(self, statement: Select) -> int:
        try:
            async with self._database.session() as session:
                value = await session.scalar(statement)
        except SQLAlchemyError as exc:
            raise StoreError(f"Query failed: {exc}") from exc
        return int(value or 0)

    async def _rows(self, statement: Select) -> list[StockRating]:
        try:
            async with self._database.session() as session:
                result = await session.scalars(statement)
                return list(result.all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Query failed: {exc}") from exc

    async def query_page(self, offset: int, limit: int) -> tuple[list[StockRating], int]:
        """Return one page ordered newest-ingested first, plus the total row count."""

        total = await self.count()
        statement = (
            select(StockRating)
            .order_by(StockRating.created_at.desc(), StockRating.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return await self._rows(statement), total

    def filter_conditions(self, filters: SearchFilters) -> list[ColumnElement]:
        conditions: list[ColumnElement] = []
        if filters.search_term and filters.search_term.strip():
            pattern = f"%{filters.search_term.strip()}%"
            conditions.append(or_(*(getattr(StockRating, name).ilike(pattern) for name in SEARCHABLE_COLUMNS)))
        for name in ("action", "rating_from", "rating_to"):
            value = getattr(filters, name)
            if _active(value):
                conditions.append(func.lower(getattr(StockRating, name)) == value.strip().lower())

        target_from = self.price_expression(StockRating.target_from)
        target_to = self.price_expression(StockRating.target_to)
        if _active_bound(filters.target_from_min):
            conditions.append(target_from >= filters.target_from_min)
        if _active_bound(filters.target_from_max):
            conditions.append(target_from <= filters.target_from_max)
        if _active_bound(filters.target_to_min):
            conditions.append(target_to >= filters.target_to_min)
        if _active_bound(filters.target_to_max):
            conditions.append(target_to <= filters.target_to_max)
        return conditions

    async def query_filtered(
        self, filters: SearchFilters, offset: int, limit: int
    ) -> tuple[list[StockRating], int]:
        conditions = self.filter_conditions(filters)
        total = await self._scalar(select(func.count()).select_from(StockRating).where(*conditions))
        statement = (
            select(StockRating)
            .where(*conditions)
            .order_by(StockRating.created_at.desc(), StockRating.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return await self._rows(statement), total

    async def distinct_values(self, column: str) -> list[str]:
        """Sorted unique non-empty values of one of the categorical columns."""

        if column not in DISTINCT_COLUMNS:
            raise ValueError(f"Column {column!r} does not support distinct lookups")
        attribute = getattr(StockRating, column)
        statement = select(attribute).where(attribute != "").distinct().order_by(attribute)
        try:
            async with self._database.session() as session:
                result = await session.scalars(statement)
                return [value for value in result.all() if value and value.strip()]
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to load distinct {column} values: {exc}") from exc

    async def all_events(self) -> list[StockRating]:
        return await self._rows(select(StockRating).order_by(StockRating.id))

    async def latest_events(self, limit: int) -> list[StockRating]:
        """The ``limit`` most recent events by analyst time."""

        statement = select(StockRating).order_by(StockRating.time.desc(), StockRating.id.desc()).limit(limit)
        return await self._rows(statement)

    async def events_for_tickers(self, tickers: Iterable[str], limit: int = 20) -> list[StockRating]:
        symbols = sorted({ticker.upper() for ticker in tickers})
        if not symbols:
            return []
        statement = (
            select(StockRating)
            .where(StockRating.ticker.in_(symbols))
            .order_by(StockRating.time.desc(), StockRating.id.desc())
            .limit(limit)
        )
        return await self._rows(statement)


__all__ = ["DISTINCT_COLUMNS", "RatingStore", "SearchFilters", "StoreError"]
