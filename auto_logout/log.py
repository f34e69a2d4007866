"""Logging setup: stream logging, a recent-log ring buffer, and the crash log."""

import logging
import sys
import traceback
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Deque

from . import config

logger = logging.getLogger("auto_logout")

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Circular buffer of recent log entries, served by /api/logs/recent
log_buffer: Deque[dict] = deque(maxlen=100)


class LogBufferHandler(logging.Handler):
    """Logging handler that captures records into the circular buffer."""

    def emit(self, record: logging.LogRecord):
        try:
            log_buffer.append({
                "timestamp": datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
                "level": record.levelname,
                "logger": record.name,
                "message": self.format(record),
            })
        except Exception:
            self.handleError(record)


def setup_logging(level: str = None) -> None:
    """Attach stream and buffer handlers to the package logger (idempotent)."""
    logger.setLevel(level or config.LOG_LEVEL)
    if any(isinstance(h, LogBufferHandler) for h in logger.handlers):
        return

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(stream_handler)

    buffer_handler = LogBufferHandler()
    buffer_handler.setLevel(logging.DEBUG)
    buffer_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(buffer_handler)

    # Also capture uvicorn logs
    logging.getLogger("uvicorn").addHandler(buffer_handler)


def recent_logs(limit: int = 50) -> list[dict]:
    limit = max(0, min(limit, log_buffer.maxlen))
    if limit == 0:
        return []
    return list(log_buffer)[-limit:]


# ============ Crash Logging ============


def log_crash(exc_type, exc_value, exc_tb, context: str = "unhandled", path: Path = None) -> None:
    """Append crash info to the crash log for post-mortem debugging."""
    path = path or config.CRASH_LOG_PATH
    try:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        tb_str = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a") as f:
            f.write(f"\n{'=' * 60}\n")
            f.write(f"CRASH [{context}] at {timestamp}\n")
            f.write(f"{'=' * 60}\n")
            f.write(tb_str)
            f.write("\n")
        print(f"CRASH [{context}]: {exc_type.__name__}: {exc_value}", file=sys.stderr)
    except OSError:
        pass  # Don't crash while logging a crash


def write_crash_marker(message: str, path: Path = None) -> None:
    """Record a lifecycle marker (server start/stop) in the crash log."""
    path = path or config.CRASH_LOG_PATH
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        with open(path, "a") as f:
            f.write(f"--- {message} at {timestamp} ---\n")
    except OSError:
        pass


def global_exception_handler(exc_type, exc_value, exc_tb):
    """sys.excepthook replacement for uncaught sync exceptions."""
    log_crash(exc_type, exc_value, exc_tb, context="sync")
    sys.__excepthook__(exc_type, exc_value, exc_tb)


def asyncio_exception_handler(loop, context):
    """Handler for uncaught exceptions in asyncio tasks."""
    exception = context.get("exception")
    if exception:
        log_crash(type(exception), exception, exception.__traceback__, context="asyncio")
    else:
        logger.error(f"asyncio error: {context.get('message')}")
    loop.default_exception_handler(context)
