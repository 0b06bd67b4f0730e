"""Formatters and output routing for user-facing and operational log records."""

from __future__ import annotations

import copy
import json
import logging
import sys
from datetime import datetime
from typing import Any, TextIO

_USER_LOG = "user"
_INTERNAL_FIELDS = frozenset({"log_type", "emoji"})
_RESERVED_JSON_KEYS = ("msg", "level", "time")
_RESET = "\033[0m"
_LEVEL_COLORS = {
    logging.ERROR: "\033[31m",
    logging.WARNING: "\033[33m",
    logging.INFO: "\033[36m",
    logging.DEBUG: "\033[37m",
}


def _fields_of(record: logging.LogRecord) -> dict[str, Any]:
    return dict(getattr(record, "fields", None) or {})


def _isatty(stream: Any) -> bool:
    try:
        return bool(stream.isatty())
    except (AttributeError, ValueError):
        return False


def _render_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _level_label(record: logging.LogRecord, colors: bool) -> str:
    if not colors:
        return f"{record.levelname.upper()}: "
    color = _LEVEL_COLORS.get(record.levelno, "")
    return f"{color}{record.levelname.upper()}{_RESET}: "


class CLIFormatter(logging.Formatter):
    """Plain console output: the bare message, or a level prefix plus fields."""

    def __init__(
        self,
        disable_timestamp: bool = False,
        disable_level: bool = False,
        disable_colors: bool = False,
    ) -> None:
        super().__init__()
        self.disable_timestamp = disable_timestamp
        self.disable_level = disable_level
        self.disable_colors = disable_colors

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if self.disable_level and self.disable_timestamp:
            return message

        out = ""
        if not self.disable_level:
            out += _level_label(record, not self.disable_colors)
        out += message

        fields = _fields_of(record)
        if fields:
            out += " " + "".join(f"{key}={_render_value(value)} " for key, value in fields.items())
        return out


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with fields, level, msg and time keys."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {}
        for key, value in _fields_of(record).items():
            if key in _RESERVED_JSON_KEYS:
                key = f"fields.{key}"
            data[key] = str(value) if isinstance(value, BaseException) else value
        data["time"] = datetime.fromtimestamp(record.created).astimezone().isoformat(timespec="seconds")
        data["level"] = record.levelname.lower()
        data["msg"] = record.getMessage()
        return json.dumps(data, sort_keys=True, default=str)


class UnifiedFormatter(logging.Formatter):
    """Formats a record according to its log_type field."""

    def __init__(
        self,
        user_output: TextIO | None = None,
        op_output: TextIO | None = None,
        enable_colors: bool | None = None,
        show_timestamp: bool = False,
        show_level: bool = True,
        json_format: bool = False,
    ) -> None:
        super().__init__()
        self.user_output = user_output
        self.op_output = op_output
        if enable_colors is None:
            enable_colors = _isatty(sys.stdout) or _isatty(sys.stderr)
        self.enable_colors = enable_colors
        self.show_timestamp = show_timestamp
        self.show_level = show_level
        self.json_format = json_format

    def format(self, record: logging.LogRecord) -> str:
        fields = _fields_of(record)
        if self.json_format:
            return JSONFormatter().format(record)
        if fields.get("log_type") == _USER_LOG:
            return self._format_user(record, str(fields.get("emoji") or ""))
        return self._format_op(record, fields)

    @staticmethod
    def _format_user(record: logging.LogRecord, emoji: str) -> str:
        message = record.getMessage()
        return f"{emoji} {message}" if emoji else message

    def _format_op(self, record: logging.LogRecord, fields: dict[str, Any]) -> str:
        out = ""
        if self.show_timestamp:
            out += datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S") + " "
        if self.show_level:
            out += _level_label(record, self.enable_colors)
        out += record.getMessage()
        if fields:
            visible = (
                f"{key}={_render_value(value)}"
                for key, value in fields.items()
                if key not in _INTERNAL_FIELDS
            )
            out += " " + " ".join(visible)
        return out


class OutputRouterHandler(logging.Handler):
    """Sends user logs to one writer and operational logs to another."""

    def __init__(
        self,
        user_formatter: logging.Formatter | None = None,
        op_formatter: logging.Formatter | None = None,
        user_writer: TextIO | None = None,
        op_writer: TextIO | None = None,
    ) -> None:
        super().__init__()
        self.user_formatter = user_formatter or CLIFormatter(
            disable_timestamp=True, disable_level=True, disable_colors=False
        )
        self.op_formatter = op_formatter or CLIFormatter()
        self.user_writer = user_writer
        self.op_writer = op_writer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            fields = _fields_of(record)
            if fields.get("log_type") == _USER_LOG:
                formatter = self.user_formatter
                writer = self.user_writer or sys.stdout
                emoji = fields.get("emoji")
                if isinstance(emoji, str) and emoji:
                    record = copy.copy(record)
                    record.msg = f"{emoji} {record.getMessage()}"
                    record.args = ()
            else:
                formatter = self.op_formatter
                writer = self.op_writer or sys.stderr
            writer.write(formatter.format(record) + "\n")
            if hasattr(writer, "flush"):
                writer.flush()
        except Exception:
            self.handleError(record)


class LogTypeWriter:
    """A stream that forwards everything to the user writer."""

    def __init__(self, user_writer: TextIO | None = None, op_writer: TextIO | None = None) -> None:
        self.user_writer = user_writer
        self.op_writer = op_writer

    def _stream(self) -> TextIO:
        return self.user_writer or sys.stdout

    def write(self, data: str) -> int:
        self._stream().write(data)
        return len(data)

    def flush(self) -> None:
        stream = self._stream()
        if hasattr(stream, "flush"):
            stream.flush()