"""Structured logging helpers and the bounded diagnostics log."""
import json
import logging
import os
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

logger = logging.getLogger("chatproxy")

REDACT_KEYS = ("security_key", "openai_api_key", "access_token", "api_key")


def _file_logging_enabled() -> bool:
    return os.getenv("LOG_TO_FILE", "True").lower() in ("1", "true", "yes", "on")


def _build_rotating_handler(log_dir: str, filename: str) -> RotatingFileHandler:
    os.makedirs(log_dir, exist_ok=True)
    max_mb = float(os.getenv("LOG_FILE_MAX_MB", "10"))
    backup_count = int(os.getenv("LOG_FILE_BACKUPS", "5"))
    max_bytes = max(1, int(max_mb * 1024 * 1024))
    backup_count = max(1, backup_count)
    log_path = os.path.join(log_dir, filename)
    handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def setup_logging(level: str, log_dir: str | None = None) -> None:
    """Configure root logging level and handlers."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_dir and _file_logging_enabled():
        try:
            handlers.append(_build_rotating_handler(log_dir, "chatproxy.log"))
        except OSError as exc:
            # Fall back to stdout-only if file logging can't be initialized.
            print(f"[chatproxy] file logging disabled: {exc}", file=sys.stderr)
    logging.basicConfig(level=numeric, handlers=handlers, force=True)


def log_event(level: int, message: str, **fields) -> None:
    """Emit a structured log line."""
    payload = {"message": message, "ts": int(time.time())}
    payload.update(fields)
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))


def redact_payload(payload, redact_keys=REDACT_KEYS):
    """Recursively mask sensitive keys in JSON-like payloads."""
    if isinstance(payload, dict):
        masked = {}
        for key, value in payload.items():
            if key in redact_keys:
                masked[key] = "***"
            else:
                masked[key] = redact_payload(value, redact_keys)
        return masked
    if isinstance(payload, list):
        return [redact_payload(item, redact_keys) for item in payload]
    return payload


def truncate(text: str, limit: int = 2000) -> str:
    if len(text) > limit:
        return text[:limit] + "...(truncated)"
    return text


@dataclass(frozen=True)
class LogEntry:
    kind: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class BoundedLog:
    """Fixed-capacity FIFO of log entries; the oldest entry falls off first."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._entries = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, kind: str, message: str) -> LogEntry:
        entry = LogEntry(kind=kind, message=message)
        with self._lock:
            self._entries.append(entry)
        log_event(logging.ERROR if kind == "ERROR" else logging.INFO, "diagnostics_log", kind=kind, entry=message)
        return entry

    def info(self, message: str) -> LogEntry:
        return self.append("INFO", message)

    def error(self, message: str) -> LogEntry:
        return self.append("ERROR", message)

    def entries(self) -> list[LogEntry]:
        """Retained entries, oldest first."""
        with self._lock:
            return list(self._entries)

    def recent(self) -> list[LogEntry]:
        """Retained entries, newest first."""
        return list(reversed(self.entries()))

    def __len__(self) -> int:
        return len(self._entries)
