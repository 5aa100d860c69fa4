import logging
import os
from collections import deque
from datetime import UTC, datetime
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger


# Ring Buffer for recent logs shown in the dashboard
class RingBufferHandler(logging.Handler):
    """In-memory ring buffer for log entries that the UI can poll."""

    def __init__(self, maxlen: int = 1000) -> None:
        super().__init__()
        self._buffer: deque[dict[str, Any]] = deque(maxlen=maxlen)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            timestamp = datetime.fromtimestamp(record.created, tz=UTC)
        except (OverflowError, OSError, ValueError):
            timestamp = datetime.now(UTC)
        entry = {
            "timestamp": timestamp.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self.format(record),
        }
        self._buffer.append(entry)

    def get_logs(self, limit: int | None = None) -> list[dict[str, Any]]:
        logs = list(self._buffer)
        if limit is not None:
            return logs[-limit:]
        return logs


# Global instances
_ring_buffer_handler = RingBufferHandler(maxlen=1000)
_configured = False


def setup_logging(log_dir: Path | None = None) -> None:
    """Configure centralized logging with JSON file rotation and Ring Buffer."""
    global _configured
    if _configured:
        return

    log_level_str = os.environ.get("LOG_LEVEL", "INFO").upper()
    valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if log_level_str not in valid_levels:
        log_level_str = "INFO"

    log_level = getattr(logging, log_level_str)
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # 1. Console Handler (Simple format)
    console_handler = logging.StreamHandler()
    console_formatter = logging.Formatter("%(levelname)s:\t%(name)s - %(message)s")
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    # 2. File Handler (JSON, Timed Rotation)
    log_dir = log_dir or Path(os.environ.get("GRIDPULSE_LOG_DIR", Path.cwd() / "data"))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "gridpulse.log"

    file_handler = TimedRotatingFileHandler(
        log_file, when="midnight", interval=1, backupCount=7, encoding="utf-8"
    )

    json_formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s %(module)s %(lineno)d"
    )
    file_handler.setFormatter(json_formatter)
    root_logger.addHandler(file_handler)

    # 3. Ring Buffer Handler (for UI)
    _ring_buffer_handler.setFormatter(console_formatter)
    root_logger.addHandler(_ring_buffer_handler)

    logging.getLogger("gridpulse").setLevel(log_level)
    logging.getLogger("replay").setLevel(log_level)
    _configured = True


def get_ring_buffer() -> RingBufferHandler:
    """Return the global ring buffer handler instance."""
    return _ring_buffer_handler
