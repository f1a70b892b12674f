"""
Logging Configuration for the Enrollment Engine.

Provides structured logging with:
- JSON formatting for production
- Human-readable formatting for development
- Request and enrollment-session correlation via context variables
- SSN redaction on every record before it is emitted
"""

import json
import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

# Context variables for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
session_id_var: ContextVar[Optional[str]] = ContextVar('enrollment_session_id', default=None)

# Attributes every LogRecord has; anything else was passed through ``extra``.
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message", "asctime", "extra_data",
}

SSN_PATTERN = re.compile(r"\b\d{3}-?\d{2}-?\d{4}\b")
SSN_REDACTED = "[SSN-REDACTED]"


def redact(value: Any) -> Any:
    """Replace anything shaped like an SSN inside strings, dicts and lists."""
    if isinstance(value, str):
        return SSN_PATTERN.sub(SSN_REDACTED, value)
    if isinstance(value, dict):
        return {k: redact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(redact(v) for v in value)
    return value


class SsnRedactionFilter(logging.Filter):
    """
    Logging filter that strips SSNs before output.

    Sanitizes the message, its %-format arguments, and any custom fields.
    Always returns True: records are cleaned, never dropped.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = redact(record.args)
            else:
                record.args = tuple(redact(arg) for arg in record.args)

        for key, value in list(vars(record).items()):
            if key not in _RESERVED_ATTRS and isinstance(value, (str, dict, list, tuple)):
                setattr(record, key, redact(value))
        if hasattr(record, "extra_data"):
            record.extra_data = redact(record.extra_data)
        return True


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    extras = {k: v for k, v in vars(record).items() if k not in _RESERVED_ATTRS}
    extras.update(getattr(record, "extra_data", None) or {})
    return extras


class JsonFormatter(logging.Formatter):
    """
    JSON log formatter for structured logging.

    Outputs logs as JSON objects for easy parsing by log aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        session_id = session_id_var.get()
        if session_id:
            log_data["session_id"] = session_id

        log_data.update(_extra_fields(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ReadableFormatter(logging.Formatter):
    """
    Human-readable log formatter for development.
    """

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',
    }

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for human readability."""
        if self.use_colors:
            color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
            reset = self.COLORS['RESET']
        else:
            color = reset = ""

        timestamp = datetime.now().strftime('%H:%M:%S.%f')[:-3]
        level = f"{color}{record.levelname:8s}{reset}"

        message = f"{timestamp} {level} [{record.name}] {record.getMessage()}"

        extras = _extra_fields(record)
        session_id = session_id_var.get()
        if session_id:
            extras.setdefault("session_id", session_id)
        if extras:
            message += " | " + ' | '.join(f"{k}={v}" for k, v in extras.items())

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)
        return message


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that includes context in all log messages.
    """

    def process(self, msg: str, kwargs: Dict) -> tuple:
        """Add context to log message."""
        extra = kwargs.get('extra', {})

        extra_data = dict(self.extra)
        extra_data.update(extra.pop('extra_data', {}))

        session_id = session_id_var.get()
        if session_id:
            extra_data.setdefault('session_id', session_id)

        extra['extra_data'] = extra_data
        kwargs['extra'] = extra
        return msg, kwargs


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Path] = None
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON formatted logs
        log_file: Optional file path for log output
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    root_logger.handlers.clear()

    formatter = JsonFormatter() if json_output else ReadableFormatter()
    redaction = SsnRedactionFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(redaction)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JsonFormatter())  # Always JSON for files
        file_handler.addFilter(redaction)
        root_logger.addHandler(file_handler)

    # Set levels for noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str, **extra) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (typically __name__)
        **extra: Additional context to include in all logs

    Returns:
        ContextLogger instance
    """
    return ContextLogger(logging.getLogger(name), extra)
