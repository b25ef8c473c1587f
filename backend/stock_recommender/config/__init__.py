"""Configuration package for the stock recommender service."""

from .settings import AppSettings, get_settings

__all__ = ["AppSettings", "get_settings"]
