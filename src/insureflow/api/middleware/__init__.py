"""API middleware package."""

from src.insureflow.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
