"""Logging for Polyprovider.

Everything goes through one ``polyprovider`` logger. The console handler
honours ``POLYPROVIDER_LOG_LEVEL``; an optional file handler records every
level as ``<timestamp> [LEVEL] message | {json extras}``. Extras whose key
looks like a credential are masked before they reach any sink.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional, Tuple

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RESERVED_FIELDS = frozenset(
    vars(logging.LogRecord("", logging.NOTSET, "", 0, "", (), None))
) | {"message", "asctime"}

_SECRET_MARKERS = ("apikey", "api_key", "token", "secret", "password")


def _is_secret(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SECRET_MARKERS)


def redact(value: Any) -> Any:
    """Mask credential-looking keys inside (possibly nested) mappings."""
    if isinstance(value, dict):
        return {
            key: "***" if _is_secret(str(key)) and item else redact(item)
            for key, item in value.items()
        }
    return value


class StructuredFormatter(logging.Formatter):
    """ISO-8601 UTC timestamps plus the record's extras as sorted JSON."""

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        extras = redact(
            {
                key: value
                for key, value in vars(record).items()
                if key not in _RESERVED_FIELDS and not key.startswith("_")
            }
        )
        if not extras:
            return message
        try:
            payload = json.dumps(extras, sort_keys=True, ensure_ascii=True, default=str)
        except (TypeError, ValueError):
            payload = str(extras)
        return f"{message} | {payload}"


class PolyproviderLogger(logging.LoggerAdapter):
    """Adapter over the package logger carrying bound context.

    ``bind(provider=..., model=...)`` returns a child whose context is merged
    into every record's extras; per-call ``extra=`` wins on conflicts.
    """

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        super().__init__(logger, dict(context or {}))

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs

    def bind(self, **context: Any) -> "PolyproviderLogger":
        return PolyproviderLogger(self.logger, {**self.extra, **context})

    def attach_file_handler(self, log_file: Path) -> Path:
        """Write every level to ``log_file``, replacing any previous file sink."""
        log_file.parent.mkdir(parents=True, exist_ok=True)
        for handler in list(self.logger.handlers):
            if not isinstance(handler, logging.FileHandler):
                continue
            if Path(handler.baseFilename) == log_file.absolute():
                return log_file
            self.logger.removeHandler(handler)
            handler.close()

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(StructuredFormatter("%(asctime)s [%(levelname)s] %(message)s"))
        self.logger.addHandler(file_handler)
        return log_file


def _configure(logger: logging.Logger) -> None:
    level_name = os.getenv("POLYPROVIDER_LOG_LEVEL", "WARNING").upper()
    # The logger itself passes everything; handlers decide what they keep.
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    if any(not isinstance(h, logging.FileHandler) for h in logger.handlers):
        return
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(getattr(logging, level_name, logging.WARNING))
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(console)


_logger: Optional[PolyproviderLogger] = None


def get_logger() -> PolyproviderLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        base = logging.getLogger("polyprovider")
        _configure(base)
        _logger = PolyproviderLogger(base)
    return _logger
