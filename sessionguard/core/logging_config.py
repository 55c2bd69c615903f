# sessionguard/core/logging_config.py
"""Logging configuration and log-record sanitization"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Mapping, Optional

REDACTED = "[REDACTED]"

# Substring match on the lower-cased field name
SENSITIVE_FIELD_TERMS = (
    "password",
    "passwd",
    "token",
    "secret",
    "key",
    "cookie",
    "session_id",
    "sessionid",
    "authorization",
)


def is_sensitive_field(field: str) -> bool:
    name = str(field).lower()
    return any(term in name for term in SENSITIVE_FIELD_TERMS)


def sanitize_log_data(data: Any) -> Any:
    """
    Return a copy of ``data`` with sensitive values replaced.

    Mappings are walked recursively and any value whose key matches a
    sensitive term is replaced by ``[REDACTED]``. Lists and tuples are walked
    element by element and rebuilt as plain lists and tuples. Scalars are
    returned unchanged.
    """
    if isinstance(data, Mapping):
        sanitized = {}
        for key, value in data.items():
            if is_sensitive_field(key):
                sanitized[key] = REDACTED
            else:
                sanitized[key] = sanitize_log_data(value)
        return sanitized
    if isinstance(data, list):
        return [sanitize_log_data(item) for item in data]
    if isinstance(data, tuple):
        return tuple(sanitize_log_data(item) for item in data)
    return data


class SensitiveDataFilter(logging.Filter):
    """Redacts sensitive fields in mapping arguments and ``extra={"meta": ...}``"""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, Mapping):
            record.args = sanitize_log_data(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(
                sanitize_log_data(arg) if isinstance(arg, (Mapping, list)) else arg
                for arg in record.args
            )
        meta = getattr(record, "meta", None)
        if meta is not None:
            record.meta = sanitize_log_data(meta)
        return True


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None):
    """Configure the root logger with console and optional rotating file output"""
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Console handler, attached once
    if not any(type(h) is logging.StreamHandler for h in root_logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # File handler (rotating, 5 MB per file, 5 files)
    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        log_file = log_path / 'sessionguard.log'
        if not any(isinstance(h, RotatingFileHandler) and h.baseFilename == str(log_file.resolve())
                   for h in root_logger.handlers):
            file_handler = RotatingFileHandler(
                filename=str(log_file),
                maxBytes=5 * 1024 * 1024,
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

    for handler in root_logger.handlers:
        if not any(isinstance(f, SensitiveDataFilter) for f in handler.filters):
            handler.addFilter(SensitiveDataFilter())

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return root_logger
