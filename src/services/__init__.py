"""Shared services: logging configuration."""

from .logging_config import (
    ContextLogger,
    JsonFormatter,
    ReadableFormatter,
    SsnRedactionFilter,
    configure_logging,
    get_logger,
    redact,
    request_id_var,
    session_id_var,
)

__all__ = [
    "ContextLogger",
    "JsonFormatter",
    "ReadableFormatter",
    "SsnRedactionFilter",
    "configure_logging",
    "get_logger",
    "redact",
    "request_id_var",
    "session_id_var",
]
