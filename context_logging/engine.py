from __future__ import annotations

import logging
import re
import sys
from logging.handlers import WatchedFileHandler
from pathlib import Path
from typing import Any, Callable, Mapping

import structlog
from structlog.typing import EventDict, WrappedLogger

from context_logging.config import (
    FATAL,
    LEVELS,
    TRACE,
    Destination,
    LoggerOptions,
    RedactOptions,
    canonical_level,
    resolve_level,
)

_TRUNCATION_MARKER = "…(truncated)"
_CIRCULAR = "[Circular]"


class LevelFilter:
    """Drop events below the configured minimum severity."""

    def __init__(self, min_level: float) -> None:
        self.min_level = min_level

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        severity = LEVELS.get(canonical_level(method_name), logging.INFO)
        if severity < self.min_level:
            raise structlog.DropEvent
        return event_dict


class RecordHeader:
    """Put `level`, `time` and `name` at the front of the record."""

    def __init__(
        self,
        level_formatter: Callable[[str], str],
        timestamp: Callable[[], str] | None,
        name: str | None,
    ) -> None:
        self.level_formatter = level_formatter
        self.timestamp = timestamp
        self.name = name

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        header: dict[str, Any] = {"level": self.level_formatter(canonical_level(method_name))}
        if self.timestamp is not None:
            header["time"] = self.timestamp()
        if self.name:
            header["name"] = self.name
        for key in header:
            event_dict.pop(key, None)
        header.update(event_dict)
        return header


class RedactFields:
    """Remove (or censor) sensitive field names at any depth of the record.

    Nested mappings and sequences are copied, never mutated, so values the
    caller still holds are left untouched. A container that contains itself is
    rendered as "[Circular]" at the point of repetition.
    """

    def __init__(self, redact: RedactOptions) -> None:
        self.paths = frozenset(redact.paths)
        self.remove = redact.remove
        self.censor = redact.censor

    def _strip(self, value: Any, parents: frozenset[int]) -> Any:
        if isinstance(value, (Mapping, list, tuple)):
            if id(value) in parents:
                return _CIRCULAR
            parents = parents | {id(value)}
        if isinstance(value, Mapping):
            cleaned: dict[Any, Any] = {}
            for key, item in value.items():
                if key in self.paths:
                    if not self.remove:
                        cleaned[key] = self.censor
                    continue
                cleaned[key] = self._strip(item, parents)
            return cleaned
        if isinstance(value, (list, tuple)):
            return [self._strip(item, parents) for item in value]
        return value

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        # Always copy: the copy is also what breaks reference cycles before rendering.
        return self._strip(event_dict, frozenset())


class ScrubAndTruncateMessage:
    def __init__(self, max_chars: int, scrub: bool = True) -> None:
        self.max_chars = max_chars

        # Keep this small and high-signal; expand only with strong justification.
        self._patterns: list[tuple[re.Pattern[str], str]] = []
        if scrub:
            self._patterns = [
                # Telegram bot token in API URLs: https://api.telegram.org/bot<token>/...
                (re.compile(r"(api\.telegram\.org/bot)([^/\s]+)"), r"\1<REDACTED>"),
                # Generic Bearer token
                (re.compile(r"\bBearer\s+[^\s]+"), "Bearer <REDACTED>"),
                # Common OpenAI-style key prefix (avoid leaking)
                (re.compile(r"\bsk-[A-Za-z0-9]{10,}\b"), "sk-<REDACTED>"),
            ]

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        message = event_dict.get("message")
        if not isinstance(message, str):
            return event_dict

        redacted = message
        for pattern, replacement in self._patterns:
            redacted = pattern.sub(replacement, redacted)

        if self.max_chars > 0 and len(redacted) > self.max_chars:
            redacted = redacted[: self.max_chars] + _TRUNCATION_MARKER

        event_dict["message"] = redacted
        return event_dict


class HandlerSink:
    """Wrapped logger for structlog: one method per severity, each writing the
    rendered line to stdlib handlers at the matching numeric level.
    """

    def __init__(self, name: str, handlers: list[logging.Handler]) -> None:
        self.name = name
        self.handlers = handlers

    def _write(self, level: int, line: str) -> None:
        record = logging.LogRecord(self.name, level, "", 0, line, None, None)
        for handler in self.handlers:
            if level >= handler.level:
                handler.handle(record)

    def trace(self, line: str) -> None:
        self._write(TRACE, line)

    def debug(self, line: str) -> None:
        self._write(logging.DEBUG, line)

    def info(self, line: str) -> None:
        self._write(logging.INFO, line)

    def warn(self, line: str) -> None:
        self._write(logging.WARNING, line)

    def error(self, line: str) -> None:
        self._write(logging.ERROR, line)

    def fatal(self, line: str) -> None:
        self._write(FATAL, line)

    warning = warn
    critical = fatal
    exception = error

    def flush(self) -> None:
        for handler in self.handlers:
            handler.flush()

    def close(self) -> None:
        for handler in self.handlers:
            handler.flush()
            handler.close()


class _RaiseOnError:
    """Handler mixin: write failures reach the logging call instead of stderr."""

    def handleError(self, record: logging.LogRecord) -> None:  # noqa: N802
        # Called from inside the handler's except block.
        raise


class _StreamHandler(_RaiseOnError, logging.StreamHandler):
    pass


class _WatchedFileHandler(_RaiseOnError, WatchedFileHandler):
    pass


def _ensure_log_dir(log_dir: Path) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)


def _build_handler(destination: Destination) -> logging.Handler:
    handler: logging.Handler
    if destination is None:
        handler = _StreamHandler(sys.stdout)
    elif isinstance(destination, (str, Path)):
        log_file = Path(destination).expanduser()
        _ensure_log_dir(log_file.parent)
        handler = _WatchedFileHandler(log_file, encoding="utf-8")
    else:
        handler = _StreamHandler(destination)

    handler.setLevel(logging.NOTSET)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def build_processors(options: LoggerOptions) -> list[Callable[..., Any]]:
    return [
        LevelFilter(resolve_level(options.level)),
        RecordHeader(options.level_formatter, options.timestamp, options.name),
        structlog.processors.EventRenamer("message"),
        RedactFields(options.redact),
        ScrubAndTruncateMessage(options.max_message_chars, scrub=options.redact_patterns),
        structlog.processors.JSONRenderer(),
    ]


class LogEngine:
    """Handle on a structlog logger and the handlers it writes through.

    Derived (child) engines share the parent's sink, options and processors
    and differ only in the fields bound to their structlog logger.

    Bound loggers are constructed from a context dict rather than through
    `bind(**fields)`, so any string is a valid field name (including `self`).
    """

    def __init__(
        self,
        options: LoggerOptions,
        sink: HandlerSink,
        processors: list[Callable[..., Any]],
        bindings: Mapping[str, Any] | None = None,
    ) -> None:
        self._options = options
        self._sink = sink
        self._processors = processors
        self._bindings = dict(bindings or {})
        self._bound = self._wrap(self._bindings)

    def _wrap(self, context: dict[str, Any]) -> structlog.BoundLogger:
        return structlog.BoundLogger(self._sink, self._processors, context)

    @property
    def options(self) -> LoggerOptions:
        return self._options

    @property
    def bound(self) -> structlog.BoundLogger:
        return self._bound

    @property
    def sink(self) -> HandlerSink:
        return self._sink

    def emit(self, severity: str, fields: Mapping[str, Any], message: str) -> None:
        getattr(self._wrap({**self._bindings, **fields}), severity)(message)

    def child(self, bindings: Mapping[str, Any]) -> "LogEngine":
        return LogEngine(
            self._options, self._sink, self._processors, {**self._bindings, **bindings}
        )

    def flush(self, on_complete: Callable[[], None]) -> None:
        self._sink.flush()
        on_complete()

    def close(self) -> None:
        self._sink.close()


def create_engine(options: LoggerOptions) -> LogEngine:
    """Build the handler, the processor chain and the structlog logger."""
    processors = build_processors(options)
    sink = HandlerSink(options.name or "context_logging", [_build_handler(options.destination)])
    return LogEngine(options, sink, processors)
