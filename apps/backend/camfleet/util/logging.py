from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .security import redact_secrets

LOG_FILE_NAME = "camfleet.log"
CONSOLE_FORMAT = "[%(asctime)s] %(levelname)s %(name)s (%(threadName)s): %(message)s"


class RedactionFilter(logging.Filter):
    """Masks stream credentials before a record reaches any handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        if msg:
            record.msg = redact_secrets(msg)
            record.args = ()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": redact_secrets(record.getMessage()),
        }
        if record.exc_info:
            payload["exc_info"] = redact_secrets(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=True)


def _is_own_file_handler(handler: logging.Handler) -> bool:
    return isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename).name == LOG_FILE_NAME


def setup_logging(
    level: str,
    data_dir: Path,
    *,
    max_bytes: int = 5_000_000,
    backup_count: int = 5,
) -> Path:
    """Route all records to the console and a rotating JSON-lines file.

    Calling it again replaces the handlers; a log file opened by an earlier
    call is closed so repeated setups do not leak descriptors.
    """
    logs_dir = data_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / LOG_FILE_NAME

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        if _is_own_file_handler(handler):
            handler.close()
    root_logger.setLevel(level.upper())

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    console.addFilter(RedactionFilter())

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(JsonFormatter())
    file_handler.addFilter(RedactionFilter())

    root_logger.addHandler(console)
    root_logger.addHandler(file_handler)
    return log_path


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
