"""Database model exports."""

from .stock_rating import IDENTITY_COLUMNS, StockRating

__all__ = ["IDENTITY_COLUMNS", "StockRating"]
