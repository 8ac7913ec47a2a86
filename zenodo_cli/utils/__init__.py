"""Utility modules for zenodo-cli.

This package provides common utilities for:
- Metadata validation
- Output formatting and metadata diffs
"""

from zenodo_cli.utils.formatters import (
    CSVFormatter,
    JSONFormatter,
    MetadataChange,
    OutputFormat,
    TableFormatter,
    diff_metadata,
    format_output,
    render_diff,
)
from zenodo_cli.utils.validators import (
    VALID_ACCESS_RIGHTS,
    VALID_UPLOAD_TYPES,
    MetadataValidationResult,
    validate_metadata,
)

__all__ = [
    # Validators
    "MetadataValidationResult",
    "VALID_ACCESS_RIGHTS",
    "VALID_UPLOAD_TYPES",
    "validate_metadata",
    # Formatters
    "CSVFormatter",
    "JSONFormatter",
    "MetadataChange",
    "OutputFormat",
    "TableFormatter",
    "diff_metadata",
    "format_output",
    "render_diff",
]
