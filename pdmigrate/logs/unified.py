"""The shared application logger with structured fields and status helpers."""

from __future__ import annotations

import logging
import os
import re
import sys
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, TextIO

from .formatters import (
    CLIFormatter,
    JSONFormatter,
    LogTypeWriter,
    OutputRouterHandler,
    UnifiedFormatter,
)


class LogType(str, Enum):
    """Kind of log message: user-facing or operational."""

    USER = "user"
    OP = "op"


@dataclass(frozen=True)
class Field:
    """A key-value pair attached to a log record."""

    key: str
    value: Any


_VERB = re.compile(r"%%|%[+#]?v|%w")


def _sprintf(fmt: str, args: tuple[Any, ...]) -> str:
    if not args:
        return fmt
    converted = _VERB.sub(lambda m: m.group() if m.group() == "%%" else "%s", fmt)
    return converted % args


def _isatty(stream: Any) -> bool:
    try:
        return bool(stream.isatty())
    except (AttributeError, ValueError):
        return False


class LogEntry:
    """A set of fields bound to a logger, ready to emit a message."""

    def __init__(self, owner: UnifiedLogger, fields: Mapping[str, Any] | None = None) -> None:
        self._owner = owner
        self.fields: dict[str, Any] = dict(fields or {})

    def with_field(self, key: str, value: Any) -> LogEntry:
        return LogEntry(self._owner, {**self.fields, key: value})

    def with_error(self, err: BaseException) -> LogEntry:
        return self.with_field("error", err)

    def _log(self, level: int, msg: str) -> None:
        self._owner._emit(level, msg, self.fields)

    def info(self, msg: str) -> None:
        self._log(logging.INFO, msg)

    def infof(self, fmt: str, *args: Any) -> None:
        self._log(logging.INFO, _sprintf(fmt, args))

    def warn(self, msg: str) -> None:
        self._log(logging.WARNING, msg)

    def warnf(self, fmt: str, *args: Any) -> None:
        self._log(logging.WARNING, _sprintf(fmt, args))

    def error(self, msg: str) -> None:
        self._log(logging.ERROR, msg)

    def errorf(self, fmt: str, *args: Any) -> None:
        self._log(logging.ERROR, _sprintf(fmt, args))

    def debug(self, msg: str) -> None:
        self._log(logging.DEBUG, msg)

    def debugf(self, fmt: str, *args: Any) -> None:
        self._log(logging.DEBUG, _sprintf(fmt, args))


class UnifiedLogger:
    """Thread-safe logger carrying structured fields on every record."""

    def __init__(self, name: str = "pdmigrate") -> None:
        self._lock = threading.RLock()
        self._logger = logging.Logger(name)
        handler = logging.StreamHandler(LogTypeWriter())
        handler.setFormatter(CLIFormatter(disable_timestamp=True, disable_level=True))
        self._install(handler, logging.INFO)

    @property
    def logger(self) -> logging.Logger:
        """The underlying standard-library logger."""
        with self._lock:
            return self._logger

    def _install(self, handler: logging.Handler, level: int) -> None:
        with self._lock:
            for existing in list(self._logger.handlers):
                self._logger.removeHandler(existing)
            self._logger.addHandler(handler)
            self._logger.setLevel(level)

    def _emit(self, level: int, msg: str, fields: Mapping[str, Any]) -> None:
        self._logger.log(level, msg, extra={"fields": dict(fields)})

    def _entry(self, fields: tuple[Field, ...]) -> LogEntry:
        return LogEntry(self, {field.key: field.value for field in fields})

    def info(self, msg: str, *args: Field) -> None:
        self._entry(args).info(msg)

    def infof(self, fmt: str, *args: Any) -> None:
        self._entry(()).infof(fmt, *args)

    def error(self, msg: str, *args: Field) -> None:
        self._entry(args).error(msg)

    def errorf(self, fmt: str, *args: Any) -> None:
        self._entry(()).errorf(fmt, *args)

    def warn(self, msg: str, *args: Field) -> None:
        self._entry(args).warn(msg)

    def warnf(self, fmt: str, *args: Any) -> None:
        self._entry(()).warnf(fmt, *args)

    def debug(self, msg: str, *args: Field) -> None:
        self._entry(args).debug(msg)

    def debugf(self, fmt: str, *args: Any) -> None:
        self._entry(()).debugf(fmt, *args)

    def with_field(self, key: str, value: Any) -> LogEntry:
        return LogEntry(self, {key: value})

    def with_fields_map(self, fields: Mapping[str, Any]) -> LogEntry:
        return LogEntry(self, fields)

    def configure(self, output: TextIO, level: int, formatter: logging.Formatter) -> None:
        """Send all records to one stream with the given level and formatter."""
        handler = logging.StreamHandler(output)
        handler.setFormatter(formatter)
        self._install(handler, level)

    def _user(self, prefix: str, msg: str) -> None:
        self.info(prefix + msg, with_log_type(LogType.USER))

    def _userf(self, prefix: str, fmt: str, args: tuple[Any, ...]) -> None:
        self._entry((with_log_type(LogType.USER),)).infof(prefix + fmt, *args)

    def starting(self, msg: str) -> None:
        self._user("[STARTING] ", msg)

    def success(self, msg: str) -> None:
        self._user("[SUCCESS] ", msg)

    def successf(self, fmt: str, *args: Any) -> None:
        self._userf("[SUCCESS] ", fmt, args)

    def snapshot(self, msg: str) -> None:
        self._user("[SNAPSHOT] ", msg)

    def snapshotf(self, fmt: str, *args: Any) -> None:
        self._userf("[SNAPSHOT] ", fmt, args)

    def delete(self, msg: str) -> None:
        self._user("[DELETE] ", msg)

    def deletef(self, fmt: str, *args: Any) -> None:
        self._userf("[DELETE] ", fmt, args)

    def create(self, msg: str) -> None:
        self._user("[CREATE] ", msg)

    def createf(self, fmt: str, *args: Any) -> None:
        self._userf("[CREATE] ", fmt, args)

    def cleanup(self, msg: str) -> None:
        self._user("[CLEANUP] ", msg)

    def cleanupf(self, fmt: str, *args: Any) -> None:
        self._userf("[CLEANUP] ", fmt, args)


_instance: UnifiedLogger | None = None
_instance_lock = threading.Lock()


def get_logger() -> UnifiedLogger:
    """Return the process-wide logger, creating it on first use."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = UnifiedLogger()
        return _instance


def with_log_type(log_type: LogType) -> Field:
    return Field("log_type", LogType(log_type).value)


def with_emoji(emoji: str) -> Field:
    return Field("emoji", emoji)


def with_fields(fields: Mapping[str, Any]) -> list[Field]:
    return [Field(key, value) for key, value in fields.items()]


def _level_for(verbose: bool, quiet: bool) -> int:
    if quiet:
        return logging.ERROR
    if verbose:
        return logging.DEBUG
    return logging.INFO


def setup(verbose: bool, json_logs: bool, quiet: bool) -> None:
    """Configure output routing; LOG_MODE and LOG_FORMAT override the flags."""
    mode = os.environ.get("LOG_MODE", "")
    if mode == "quiet":
        quiet, verbose = True, False
    elif mode in ("verbose", "debug"):
        verbose, quiet = True, False

    log_format = os.environ.get("LOG_FORMAT", "")
    if log_format == "json":
        json_logs = True
    elif log_format == "text":
        json_logs = False

    if json_logs:
        handler = OutputRouterHandler(user_formatter=JSONFormatter(), op_formatter=JSONFormatter())
    else:
        stderr_tty = _isatty(sys.stderr)
        op_formatter: logging.Formatter
        if verbose:
            op_formatter = UnifiedFormatter(enable_colors=stderr_tty, show_timestamp=True)
        else:
            op_formatter = CLIFormatter(
                disable_timestamp=True, disable_level=False, disable_colors=not stderr_tty
            )
        handler = OutputRouterHandler(
            user_formatter=CLIFormatter(disable_timestamp=True, disable_level=True),
            op_formatter=op_formatter,
        )
    get_logger()._install(handler, _level_for(verbose, quiet))


def setup_unified_logger(verbose: bool, json_logs: bool, quiet: bool) -> None:
    """Configure the logger with a single log-type-aware formatter."""
    formatter = UnifiedFormatter(json_format=json_logs)
    if not quiet and verbose:
        formatter.show_timestamp = True
    writer = LogTypeWriter(formatter.user_output, formatter.op_output)
    get_logger().configure(writer, _level_for(verbose, quiet), formatter)


def info(msg: str, *args: Field) -> None:
    get_logger().info(msg, *args)


def infof(fmt: str, *args: Any) -> None:
    get_logger().infof(fmt, *args)


def error(msg: str, *args: Field) -> None:
    get_logger().error(msg, *args)


def errorf(fmt: str, *args: Any) -> None:
    get_logger().errorf(fmt, *args)


def warn(msg: str, *args: Field) -> None:
    get_logger().warn(msg, *args)


def warnf(fmt: str, *args: Any) -> None:
    get_logger().warnf(fmt, *args)


def debug(msg: str, *args: Field) -> None:
    get_logger().debug(msg, *args)


def debugf(fmt: str, *args: Any) -> None:
    get_logger().debugf(fmt, *args)


def with_field(key: str, value: Any) -> LogEntry:
    return get_logger().with_field(key, value)


def with_fields_map(fields: Mapping[str, Any]) -> LogEntry:
    return get_logger().with_fields_map(fields)


def starting(msg: str) -> None:
    get_logger().starting(msg)


def success(msg: str) -> None:
    get_logger().success(msg)


def successf(fmt: str, *args: Any) -> None:
    get_logger().successf(fmt, *args)


def snapshot(msg: str) -> None:
    get_logger().snapshot(msg)


def snapshotf(fmt: str, *args: Any) -> None:
    get_logger().snapshotf(fmt, *args)


def delete(msg: str) -> None:
    get_logger().delete(msg)


def deletef(fmt: str, *args: Any) -> None:
    get_logger().deletef(fmt, *args)


def create(msg: str) -> None:
    get_logger().create(msg)


def createf(fmt: str, *args: Any) -> None:
    get_logger().createf(fmt, *args)


def cleanup(msg: str) -> None:
    get_logger().cleanup(msg)


def cleanupf(fmt: str, *args: Any) -> None:
    get_logger().cleanupf(fmt, *args)