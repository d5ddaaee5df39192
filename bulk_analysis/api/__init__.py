"""HTTP access to the bulk-analysis admin API."""

from .client import ApiError, BulkAnalysisClient

__all__ = ["ApiError", "BulkAnalysisClient"]
