"""Core functionality for zenodo-cli.

This package contains the HTTP transport and everything it relies on:
data models, error taxonomy, rate limiting, pagination, configuration
and logging.
"""

from .config import Config, ValidationResult  # noqa: F401
from .data_models import (  # noqa: F401
    AccessLink,
    Community,
    Creator,
    Deposition,
    License,
    Metadata,
    Record,
    RecordListParams,
    SearchResult,
)
from .errors import (  # noqa: F401
    APIError,
    DecodeError,
    ExitCode,
    FieldError,
    TransportError,
    TruncationError,
    ValidationError,
    ZenodoError,
    exit_code_for,
    parse_api_error,
)
from .http_client import ZenodoClient  # noqa: F401
from .logging_setup import configure_logging, log_performance  # noqa: F401
from .pagination import PaginatedResult, paginate_all  # noqa: F401
from .rate_limiter import RateLimiter, TokenBucket  # noqa: F401

__all__ = [
    # Transport
    "ZenodoClient",
    "RateLimiter",
    "TokenBucket",
    "PaginatedResult",
    "paginate_all",
    # Models
    "AccessLink",
    "Community",
    "Creator",
    "Deposition",
    "License",
    "Metadata",
    "Record",
    "RecordListParams",
    "SearchResult",
    # Errors
    "APIError",
    "DecodeError",
    "ExitCode",
    "FieldError",
    "TransportError",
    "TruncationError",
    "ValidationError",
    "ZenodoError",
    "exit_code_for",
    "parse_api_error",
    # Config and logging
    "Config",
    "ValidationResult",
    "configure_logging",
    "log_performance",
]
