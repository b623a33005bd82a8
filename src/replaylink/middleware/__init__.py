# src/replaylink/middleware/__init__.py

"""Middleware components for the ReplayLink API."""

from .logging import REQUEST_ID_HEADER, RequestLoggingMiddleware

__all__ = ["REQUEST_ID_HEADER", "RequestLoggingMiddleware"]
