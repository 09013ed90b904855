"""Logging configuration for the API process.

Console and file handlers share one formatter that renders timestamps in
TIMEZONE (pytz). A filter on both handlers masks bearer tokens and API keys,
because backend error bodies are logged verbatim and may echo credentials.
"""

import logging
import logging.config
import os
import re
from datetime import datetime

from pytz import timezone

LOGGER_NAME = "grounded_rag"

_LEVEL_MARKERS = {
    logging.WARNING: "⚠️ ",
    logging.ERROR: "⛔ ",
    logging.CRITICAL: "⛔ ",
}

_SECRET_PATTERNS = [
    re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=-]+", re.IGNORECASE),
    re.compile(r"((?:api[_-]?key|token)[\"']?\s*[:=]\s*[\"']?)[^\s\"',}]+", re.IGNORECASE),
    re.compile(r"\b(hf_|sk-)[A-Za-z0-9_-]{8,}"),
]


class TimezoneFormatter(logging.Formatter):
    """Formats timestamps in a fixed timezone and marks warnings and errors."""

    def __init__(self, tz_name: str = "UTC", *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        moment = datetime.fromtimestamp(record.created, self.tz)
        return moment.strftime(datefmt) if datefmt else moment.isoformat()

    def formatMessage(self, record):
        marker = _LEVEL_MARKERS.get(record.levelno, "")
        record.message = marker + record.message
        return super().formatMessage(record)


class SecretRedactingFilter(logging.Filter):
    """Replaces credentials in the rendered message with "***"."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # malformed %-args from a third party logger
            message = str(record.msg)
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = ()
        return True


def redact_secrets(text: str) -> str:
    for pattern in _SECRET_PATTERNS:
        if pattern.groups:
            text = pattern.sub(lambda match: f"{match.group(1)}***", text)
        else:
            text = pattern.sub("***", text)
    return text


def setup_logging(level: str | None = None, log_dir: str | None = None, tz_name: str | None = None) -> logging.Logger:
    """Configure the root logger and return the application logger.

    Args:
        level (str | None): Log level name; defaults to LOG_LEVEL (info).
        log_dir (str | None): Directory of app.log; defaults to $ROOT_DIR/logs.
            An empty LOG_DIR disables the file handler.
        tz_name (str | None): Timestamp timezone; defaults to TIMEZONE (Europe/Berlin).

    Returns:
        logging.Logger: The "grounded_rag" logger.
    """
    level = (level or os.getenv("LOG_LEVEL", "info")).upper()
    tz_name = tz_name or os.getenv("TIMEZONE", "Europe/Berlin")
    if log_dir is None:
        log_dir = os.getenv("LOG_DIR", os.path.join(os.getenv("ROOT_DIR") or os.getcwd(), "logs"))

    formatter = {
        "()": TimezoneFormatter,
        "format": "%(asctime)s - %(levelname)s - %(message)s",
        "datefmt": "%Y-%m-%d %H:%M:%S",
        "tz_name": tz_name,
    }
    handlers: dict = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "filters": ["redact"],
            "stream": "ext://sys.stdout",
        },
    }
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "standard",
            "filters": ["redact"],
            "filename": os.path.join(log_dir, "app.log"),
            "encoding": "utf-8",
        }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"redact": {"()": SecretRedactingFilter}},
        "formatters": {"standard": formatter},
        "handlers": handlers,
        "root": {"handlers": list(handlers), "level": level},
    })

    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if level == "DEBUG" else logging.WARNING)

    return logging.getLogger(LOGGER_NAME)
