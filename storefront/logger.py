"""
JSON Logging for the storefront client.

Every record is written as one JSON object per line, to the console and
(optionally) to a size-rotated file.  Auth and audit events carry their
structured context through the standard ``extra`` mapping::

    log = get_logger("storefront.auth")
    log.info("Signed in %s", email, extra={"event": "LOGIN", "user_id": uid})
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, TextIO

# Attributes every LogRecord has; anything else arrived through ``extra``.
_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.makeLogRecord({})).keys()
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """Render a record as ``{timestamp, level, logger_name, message[, extra][, exception]}``.

    ``extra`` values are stringified so that arbitrary objects (enums,
    UUIDs, exceptions) never break serialisation.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        context = {
            key: str(value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS
        }
        if context:
            payload["extra"] = context

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            payload["exception"] = record.exc_text

        return json.dumps(payload, ensure_ascii=False)


def _console_handler(level: int, stream: Optional[TextIO]) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


def _rotating_handler(
    path: str,
    level: int,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(target),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    return handler


class StructuredLogger:
    """Injectable wrapper around a named ``logging.Logger``.

    Unset arguments fall back to ``AppConfig`` (``LOG_LEVEL``,
    ``LOG_FILE``, ``LOG_MAX_BYTES``, ``LOG_BACKUP_COUNT``).  An empty
    ``LOG_FILE`` means console only.  Handlers are attached once per
    logger name; later instances with the same name share them.
    """

    def __init__(
        self,
        name: str = "storefront",
        level: Optional[int] = None,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        # Deferred so importing this module never reads the environment.
        from storefront.config import get_config

        cfg = get_config()
        effective_level = cfg.log_level if level is None else level

        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(effective_level)

        if self._logger.handlers:
            return

        self._logger.addHandler(_console_handler(effective_level, stream))

        path = cfg.LOG_FILE if log_file is None else log_file
        if not path:
            return
        try:
            self._logger.addHandler(
                _rotating_handler(
                    path,
                    effective_level,
                    cfg.LOG_MAX_BYTES if max_bytes is None else max_bytes,
                    cfg.LOG_BACKUP_COUNT if backup_count is None else backup_count,
                )
            )
        except OSError as exc:
            self._logger.warning(
                "Log file '%s' unavailable (%s); logging to console only.", path, exc,
            )

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def name(self) -> str:
        return self._logger.name

    def log(self, level: int, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args: object, **kwargs: Any) -> None:
        """Log at ERROR with the active exception's traceback attached."""
        self._logger.exception(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "storefront") -> StructuredLogger:
    """Return a ``StructuredLogger`` configured from ``AppConfig``."""
    return StructuredLogger(name=name)
