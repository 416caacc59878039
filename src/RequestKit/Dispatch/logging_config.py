# === NAVMAP v1 ===
# {
#   "module": "RequestKit.Dispatch.logging_config",
#   "purpose": "Structured logging setup with header masking",
#   "sections": [
#     {"id": "mask-sensitive-data", "name": "mask_sensitive_data", "anchor": "function-mask-sensitive-data", "kind": "function"},
#     {"id": "generate-correlation-id", "name": "generate_correlation_id", "anchor": "function-generate-correlation-id", "kind": "function"},
#     {"id": "jsonformatter", "name": "JSONFormatter", "anchor": "class-jsonformatter", "kind": "class"},
#     {"id": "setup-logging", "name": "setup_logging", "anchor": "function-setup-logging", "kind": "function"}
#   ]
# }
# === /NAVMAP ===
"""
Structured Logging Utilities

Centralizes logging setup for RequestKit: masking credentials carried in
request headers, emitting JSON log records, and attaching correlation
identifiers to dispatched operations.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Mapping, Optional

from .config.models import LoggingConfig

LOGGER_NAME = "RequestKit"
MASK = "***masked***"

_SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "set-cookie",
        "x-api-key",
        "api_key",
        "apikey",
        "token",
        "secret",
        "password",
    }
)


def mask_sensitive_data(payload: Mapping[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with credential-bearing fields masked.

    Examples:
        >>> mask_sensitive_data({"Authorization": "Bearer abc", "Accept": "*/*"})
        {'Authorization': '***masked***', 'Accept': '*/*'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if str(key).lower() in _SENSITIVE_KEYS:
            masked[key] = MASK
        elif isinstance(value, Mapping):
            masked[key] = mask_sensitive_data(value)
        else:
            masked[key] = value
    return masked


def generate_correlation_id() -> str:
    """Twelve character hexadecimal identifier linking related log entries."""
    return uuid.uuid4().hex[:12]


class JSONFormatter(logging.Formatter):
    """Formatter emitting JSON structured logs."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        log_obj = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
        }
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            log_obj.update(record.extra_fields)
        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(log_obj), default=str)


def setup_logging(config: LoggingConfig, log_dir: Optional[Path] = None) -> logging.Logger:
    """Configure console and optional JSON file handlers on the RequestKit logger.

    Handlers installed by a previous call are replaced, so repeated calls are safe.

    Examples:
        >>> logger = setup_logging(LoggingConfig(level="DEBUG"))
        >>> logger.name
        'RequestKit'
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_requestkit_managed", False):
            logger.removeHandler(handler)
            handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._requestkit_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    directory = log_dir or (Path(config.log_dir) if config.log_dir else None)
    if directory is not None:
        directory.mkdir(parents=True, exist_ok=True)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            directory / f"requestkit-{today}.jsonl",
            maxBytes=int(config.max_log_size_mb * 1024 * 1024),
            backupCount=config.backup_count,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._requestkit_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = True
    return logger


__all__ = [
    "setup_logging",
    "mask_sensitive_data",
    "generate_correlation_id",
    "JSONFormatter",
]
