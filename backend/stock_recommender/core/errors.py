"""Exception types shared across the service."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised at startup when configuration values are inconsistent."""


class InvalidRequestError(ValueError):
    """Raised when a request fails validation before any I/O happens."""


__all__ = ["ConfigurationError", "InvalidRequestError"]
