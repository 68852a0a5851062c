"""Structured logging for the asset usage index.

Log lines go to stderr in a short human form and to a daily JSONL file under
the log directory.  ``LoggingConfiguration.max_log_size_mb`` bounds each file
and ``retention_days`` bounds how long old files are kept.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
import uuid
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .settings import LOG_DIR

__all__ = ["JSONFormatter", "setup_logging", "generate_correlation_id", "LOGGER_NAME"]

LOGGER_NAME = "ContentIndex.AssetUsage"

# Record attributes promoted to top-level JSON fields when set via ``extra``.
_RECORD_FIELDS = ("correlation_id", "usage_key", "asset_id", "node_identifier")
_MANAGED_FLAG = "_asset_usage_managed"


def generate_correlation_id() -> str:
    """Return a twelve character identifier linking the log lines of one run."""

    return uuid.uuid4().hex[:12]


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with the usage identifiers as fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in _RECORD_FIELDS:
            payload[name] = getattr(record, name, None)
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _expire_logs(log_dir: Path, retention_days: int) -> int:
    """Delete usage log files (rotated backups included) older than ``retention_days``."""

    cutoff = time.time() - retention_days * 86400
    expired = 0
    for path in log_dir.glob("asset-usage-*.jsonl*"):
        if path.stat().st_mtime < cutoff:
            path.unlink(missing_ok=True)
            expired += 1
    return expired


def _resolve_log_dir(log_dir: Optional[Path]) -> Path:
    if log_dir is not None:
        return log_dir
    env_value = os.environ.get("ASSET_USAGE_LOG_DIR", "").strip()
    return Path(env_value) if env_value else LOG_DIR


def setup_logging(
    *,
    level: str = "INFO",
    retention_days: int = 30,
    max_log_size_mb: int = 100,
    log_dir: Optional[Path] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Configure the package logger; calling it again replaces the previous handlers."""

    resolved_dir = _resolve_log_dir(log_dir)
    resolved_dir.mkdir(parents=True, exist_ok=True)
    expired = _expire_logs(resolved_dir, retention_days)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in [h for h in logger.handlers if getattr(h, _MANAGED_FLAG, False)]:
        logger.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))

    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    jsonl = RotatingFileHandler(
        resolved_dir / f"asset-usage-{today}.jsonl",
        maxBytes=max_log_size_mb * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    jsonl.setFormatter(JSONFormatter())

    for handler in (console, jsonl):
        setattr(handler, _MANAGED_FLAG, True)
        logger.addHandler(handler)
    logger.propagate = propagate

    if expired:
        logger.debug("Deleted %d expired log files from %s", expired, resolved_dir)
    return logger
