import atexit
import copy
import datetime as dt
import json
import logging
import logging.config
from pathlib import Path
from typing import override

from torrentcore.common.config import DEFAULT_LOG_DIR, DEFAULT_LOG_FILE

# attributes every LogRecord carries; anything else came in through extra={}
LOG_RECORD_BUILTIN_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class JSONLogFormatter(logging.Formatter):
    """Formats a record as one JSON object per line.

    ``fmt_keys`` maps output key -> LogRecord attribute. ``message`` and
    ``timestamp`` are always present, plus any ``extra=`` fields.
    """

    def __init__(self, *, fmt_keys: dict[str, str] | None = None):
        super().__init__()
        self.fmt_keys = dict(fmt_keys) if fmt_keys is not None else {}

    @override
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(self.to_dict(record), default=str)

    def to_dict(self, record: logging.LogRecord) -> dict:
        always_fields = {
            "message": record.getMessage(),
            "timestamp": dt.datetime.fromtimestamp(
                record.created, tz=dt.timezone.utc
            ).isoformat(),
        }
        if record.exc_info is not None:
            always_fields["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info is not None:
            always_fields["stack_info"] = self.formatStack(record.stack_info)

        entry = {}
        for key, attr in self.fmt_keys.items():
            value = always_fields.pop(attr, None)
            entry[key] = value if value is not None else getattr(record, attr, None)
        entry.update(always_fields)

        for key, value in record.__dict__.items():
            if key not in LOG_RECORD_BUILTIN_ATTRS:
                entry[key] = value
        return entry


LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "[%(levelname)s|%(module)s|L%(lineno)d] %(asctime)s: %(message)s",
            "datefmt": "%Y-%m-%dT%H:%M:%S%z",
        },
        "json": {
            "()": JSONLogFormatter,
            "fmt_keys": {
                "level": "levelname",
                "message": "message",
                "timestamp": "timestamp",
                "logger": "name",
                "module": "module",
                "function": "funcName",
                "line": "lineno",
            },
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "WARNING",
            "formatter": "simple",
            "stream": "ext://sys.stderr",
        },
        "file_json": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "DEBUG",
            "formatter": "json",
            "filename": "default",
            "maxBytes": 5000000,
            "backupCount": 5,
        },
        "queue_handler": {
            "class": "logging.handlers.QueueHandler",
            "handlers": ["console", "file_json"],
            "respect_handler_level": True,
        },
    },
    "loggers": {"root": {"level": "DEBUG", "handlers": ["queue_handler"]}},
}


def build_logging_config(log_path: Path, console_level: str = "WARNING") -> dict:
    config = copy.deepcopy(LOGGING_CONFIG)
    config["handlers"]["file_json"]["filename"] = str(log_path)
    config["handlers"]["console"]["level"] = console_level
    return config


def config_logging(
    log_path: Path | None = None, console_level: str = "WARNING"
) -> Path:
    """Configure the root logger and start the queue listener thread.

    Returns the path of the JSON-lines log file.
    """
    if log_path is None:
        log_path = DEFAULT_LOG_DIR / DEFAULT_LOG_FILE
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_logging_config(log_path, console_level))

    queue_handler = logging.getHandlerByName("queue_handler")
    if queue_handler is not None:
        queue_handler.listener.start()
        atexit.register(queue_handler.listener.stop)
    return log_path
