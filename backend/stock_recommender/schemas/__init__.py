"""Pydantic schemas exposed by the API."""
