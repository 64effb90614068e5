"""Core module exports."""

from devsql.core.errors import (
    BackupFailure,
    CatalogError,
    ConfigError,
    DevsqlError,
    ErrorCode,
    InternalError,
    MutationRejected,
    ParseError,
    SourceReadError,
    TypeMismatchError,
    WriteFailure,
)
from devsql.core.logging import (
    clear_request_id,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)

__all__ = [
    # Errors
    "BackupFailure",
    "CatalogError",
    "ConfigError",
    "DevsqlError",
    "ErrorCode",
    "InternalError",
    "MutationRejected",
    "ParseError",
    "SourceReadError",
    "TypeMismatchError",
    "WriteFailure",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "get_request_id",
    "set_request_id",
]
