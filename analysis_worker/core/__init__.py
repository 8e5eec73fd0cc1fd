"""Core utilities module."""

from .errors import (
    AnalysisWorkerError,
    ConflictError,
    InitializationError,
    InvalidOperationError,
    NotFoundError,
    UpstreamError,
    ValidationError,
    VersionNotFoundError,
)
from .logging import get_logger, setup_logging

__all__ = [
    "setup_logging",
    "get_logger",
    "AnalysisWorkerError",
    "ConflictError",
    "InitializationError",
    "InvalidOperationError",
    "NotFoundError",
    "UpstreamError",
    "ValidationError",
    "VersionNotFoundError",
]
