"""Analyst rating event model."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_recommender.db.base import Base

IDENTITY_COLUMNS = ("ticker", "brokerage", "action", "rating_from", "rating_to", "time")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StockRating(Base):
    __tablename__ = "stock_ratings"
    __table_args__ = (
        UniqueConstraint(*IDENTITY_COLUMNS, name="uq_stock_ratings_event"),
        Index("ix_stock_ratings_created_id", "created_at", "id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    ticker: Mapped[str] = mapped_column(String(10), index=True)
    company: Mapped[str] = mapped_column(String(255), default="")
    brokerage: Mapped[str] = mapped_column(String(255), default="")
    action: Mapped[str] = mapped_column(String(100), default="")
    rating_from: Mapped[str] = mapped_column(String(50), default="")
    rating_to: Mapped[str] = mapped_column(String(50), default="")
    target_from: Mapped[str] = mapped_column(String(32), default="")
    target_to: Mapped[str] = mapped_column(String(32), default="")
    time: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


__all__ = ["IDENTITY_COLUMNS", "StockRating"]
