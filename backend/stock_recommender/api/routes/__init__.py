"""Route registration helpers."""

from __future__ import annotations

from fastapi import APIRouter

from .stocks import router as stocks_router

api_router = APIRouter(prefix="/api")
api_router.include_router(stocks_router, prefix="/stocks", tags=["stocks"])

__all__ = ["api_router"]
