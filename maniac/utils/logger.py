"""
Maniac Logger
=============

Structured application logging.

Features:
- Levels mirroring the standard library
- Text and JSON (orjson) formatters
- Stream, rotating file and in-memory handlers
- Bound context with ``with_context``

Example:
    from maniac.utils.logger import get_logger

    log = get_logger("maniac.http")
    log.info("Request handled", method="GET", path="/users", status=200)
"""

from __future__ import annotations

import logging
import sys
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import orjson


class LogLevel(IntEnum):
    """Log levels."""

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL

    @classmethod
    def parse(cls, value: Union[str, int, "LogLevel"]) -> "LogLevel":
        """Parse a level from a name (``"info"``) or number."""
        if isinstance(value, str):
            return cls[value.strip().upper()]
        return cls(value)


@dataclass
class LogRecord:
    """
    A single structured log entry.

    Attributes:
        level: Severity
        message: Human readable message
        timestamp: When the entry was created
        context: Extra key/value pairs
        exception: Attached exception, if any
        logger_name: Name of the emitting logger
    """

    level: LogLevel
    message: str
    timestamp: datetime = field(default_factory=datetime.now)
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[BaseException] = None
    logger_name: str = "maniac"

    def format_exception(self) -> str:
        if self.exception is None:
            return ""
        return "".join(
            traceback.format_exception(
                type(self.exception),
                self.exception,
                self.exception.__traceback__,
            )
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level.name,
            "logger": self.logger_name,
            "message": self.message,
        }
        if self.context:
            data["context"] = self.context
        if self.exception is not None:
            data["exception"] = {
                "type": type(self.exception).__name__,
                "message": str(self.exception),
                "traceback": self.format_exception(),
            }
        return data

    def to_json(self, pretty: bool = False) -> str:
        option = orjson.OPT_INDENT_2 if pretty else 0
        return orjson.dumps(self.to_dict(), default=str, option=option).decode()


class LogFormatter:
    """Base formatter."""

    def format(self, record: LogRecord) -> str:
        raise NotImplementedError


class TextFormatter(LogFormatter):
    """
    Single-line text formatter.

    Example output:
        2024-01-15 10:30:45 [ERROR] maniac.db: Database query failed sql=SELECT 1
    """

    COLORS = {
        LogLevel.DEBUG: "\033[36m",
        LogLevel.INFO: "\033[32m",
        LogLevel.WARNING: "\033[33m",
        LogLevel.ERROR: "\033[31m",
        LogLevel.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        template: str = "{timestamp} [{level}] {logger}: {message}",
        date_format: str = "%Y-%m-%d %H:%M:%S",
        colors: bool = False,
    ):
        self.template = template
        self.date_format = date_format
        self.colors = colors and sys.stderr.isatty()

    def format(self, record: LogRecord) -> str:
        level = record.level.name
        if self.colors:
            level = f"{self.COLORS.get(record.level, '')}{level}{self.RESET}"

        message = record.message
        if record.context:
            pairs = " ".join(f"{key}={value}" for key, value in record.context.items())
            message = f"{message} {pairs}"

        output = self.template.format(
            timestamp=record.timestamp.strftime(self.date_format),
            level=level,
            logger=record.logger_name,
            message=message,
        )
        if record.exception is not None:
            output = f"{output}\n{record.format_exception().rstrip()}"
        return output


class JsonFormatter(LogFormatter):
    """One JSON document per record."""

    def __init__(self, pretty: bool = False):
        self.pretty = pretty

    def format(self, record: LogRecord) -> str:
        return record.to_json(self.pretty)


class LogHandler:
    """Base handler with a level threshold."""

    def __init__(
        self,
        formatter: Optional[LogFormatter] = None,
        level: LogLevel = LogLevel.DEBUG,
    ):
        self.formatter = formatter or TextFormatter()
        self.level = level

    def handle(self, record: LogRecord) -> None:
        if record.level >= self.level:
            self.emit(record)

    def emit(self, record: LogRecord) -> None:
        raise NotImplementedError


class StreamHandler(LogHandler):
    """Writes formatted records to a stream (stderr by default)."""

    def __init__(
        self,
        stream: Any = None,
        formatter: Optional[LogFormatter] = None,
        level: LogLevel = LogLevel.DEBUG,
    ):
        super().__init__(formatter, level)
        self.stream = stream or sys.stderr

    def emit(self, record: LogRecord) -> None:
        self.stream.write(self.formatter.format(record) + "\n")
        self.stream.flush()


class FileHandler(LogHandler):
    """
    Appends records to a file, rotating it once it grows past ``max_size``.

    Rotated files are named ``app.log.1`` .. ``app.log.{backup_count}``.
    """

    def __init__(
        self,
        path: Union[str, Path],
        formatter: Optional[LogFormatter] = None,
        level: LogLevel = LogLevel.DEBUG,
        max_size: int = 10 * 1024 * 1024,
        backup_count: int = 5,
    ):
        super().__init__(formatter or JsonFormatter(), level)
        self.path = Path(path)
        self.max_size = max_size
        self.backup_count = backup_count
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _backup(self, index: int) -> Path:
        return self.path.with_name(f"{self.path.name}.{index}")

    def emit(self, record: LogRecord) -> None:
        if self.path.exists() and self.path.stat().st_size > self.max_size:
            self.rotate()
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(self.formatter.format(record) + "\n")

    def rotate(self) -> None:
        oldest = self._backup(self.backup_count)
        if oldest.exists():
            oldest.unlink()
        for index in range(self.backup_count - 1, 0, -1):
            source = self._backup(index)
            if source.exists():
                source.rename(self._backup(index + 1))
        if self.path.exists():
            self.path.rename(self._backup(1))


class MemoryHandler(LogHandler):
    """Keeps records in a list, for inspecting what was logged."""

    def __init__(self, level: LogLevel = LogLevel.DEBUG):
        super().__init__(None, level)
        self.records: List[LogRecord] = []

    def emit(self, record: LogRecord) -> None:
        self.records.append(record)

    def messages(self) -> List[str]:
        return [record.message for record in self.records]

    def clear(self) -> None:
        self.records.clear()


class Logger:
    """
    Structured logger.

    Example:
        logger = Logger("maniac.mail", handlers=[StreamHandler()])
        logger.info("Email sent successfully", to="ada@example.com")

        request_logger = logger.with_context(request_id="abc123")
        request_logger.error("Dispatch failed", exception=exc)
    """

    def __init__(
        self,
        name: str = "maniac",
        level: LogLevel = LogLevel.DEBUG,
        handlers: Optional[List[LogHandler]] = None,
    ):
        self.name = name
        self.level = level
        self.handlers: List[LogHandler] = handlers if handlers is not None else []
        self._context: Dict[str, Any] = {}

    def add_handler(self, handler: LogHandler) -> "Logger":
        self.handlers.append(handler)
        return self

    def remove_handler(self, handler: LogHandler) -> "Logger":
        self.handlers.remove(handler)
        return self

    def with_context(self, **context: Any) -> "Logger":
        """
        Return a logger sharing this logger's handlers with extra bound context.

        Args:
            **context: Key/value pairs attached to every record

        Returns:
            New Logger
        """
        child = Logger(self.name, self.level, self.handlers)
        child._context = {**self._context, **context}
        return child

    def log(
        self,
        level: LogLevel,
        message: str,
        exception: Optional[BaseException] = None,
        **context: Any,
    ) -> None:
        if level < self.level:
            return

        record = LogRecord(
            level=level,
            message=message,
            context={**self._context, **context},
            exception=exception,
            logger_name=self.name,
        )
        for handler in self.handlers:
            try:
                handler.handle(record)
            except OSError as exc:
                # A broken handler must not take the request down with it
                sys.stderr.write(f"maniac: log handler {handler!r} failed: {exc}\n")

    def debug(self, message: str, **context: Any) -> None:
        self.log(LogLevel.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self.log(LogLevel.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self.log(LogLevel.WARNING, message, **context)

    def error(
        self,
        message: str,
        exception: Optional[BaseException] = None,
        **context: Any,
    ) -> None:
        self.log(LogLevel.ERROR, message, exception, **context)

    def critical(
        self,
        message: str,
        exception: Optional[BaseException] = None,
        **context: Any,
    ) -> None:
        self.log(LogLevel.CRITICAL, message, exception, **context)

    def exception(self, message: str, **context: Any) -> None:
        """Log the exception currently being handled at ERROR level."""
        self.log(LogLevel.ERROR, message, sys.exc_info()[1], **context)


_loggers: Dict[str, Logger] = {}


def get_logger(name: str = "maniac", level: Optional[LogLevel] = None) -> Logger:
    """
    Get or create a named logger.

    New loggers inherit the handlers of the root ``maniac`` logger when it
    has been configured, otherwise they write text to stderr.
    """
    if name not in _loggers:
        root = _loggers.get("maniac")
        if root is not None and name != "maniac":
            logger = Logger(name, level or root.level, root.handlers)
        else:
            logger = Logger(name, level or LogLevel.DEBUG, [StreamHandler()])
        _loggers[name] = logger
    return _loggers[name]


def configure_logging(
    level: Union[LogLevel, str] = LogLevel.INFO,
    format: str = "text",
    log_file: Optional[str] = None,
    colors: bool = True,
) -> Logger:
    """
    Configure the root ``maniac`` logger.

    Args:
        level: Minimum level (enum or name)
        format: ``"text"`` or ``"json"``
        log_file: Optional path of a rotating log file
        colors: Colourize text output on a TTY

    Returns:
        The configured root logger
    """
    level = LogLevel.parse(level)
    formatter: LogFormatter = JsonFormatter() if format == "json" else TextFormatter(colors=colors)

    handlers: List[LogHandler] = [StreamHandler(formatter=formatter, level=level)]
    if log_file:
        file_formatter = JsonFormatter() if format == "json" else TextFormatter()
        handlers.append(FileHandler(log_file, formatter=file_formatter, level=level))

    _loggers.clear()
    root = Logger("maniac", level, handlers)
    _loggers["maniac"] = root
    return root
