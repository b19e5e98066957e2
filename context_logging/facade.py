"""Context-aware structured log facade.

A `ContextLogger` owns a `LogFacadeState`: the engine handle (created lazily,
first initialization wins) and a process-wide context mapping that is merged
into every record. `get_logger()` returns the process singleton; tests build
their own `ContextLogger(LogFacadeState())` and throw it away.

Child loggers carry only their bindings. They do not see the root's global
context, so `set_context()` on the root has no effect on records emitted
through a child.
"""

from __future__ import annotations

import abc
import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from context_logging.config import LoggerOptions, merge_options
from context_logging.engine import LogEngine, create_engine
from context_logging.errors import ensure_error, format_error

LogContext = Mapping[str, Any]


@dataclass
class LogFacadeState:
    engine: LogEngine | None = None
    context: dict[str, Any] = field(default_factory=dict)
    engine_factory: Callable[[LoggerOptions], LogEngine] = create_engine


def _call_context(context: LogContext | None, fields: dict[str, Any]) -> dict[str, Any]:
    if context is None:
        return fields
    return {**context, **fields}


async def _await_flush(engine: LogEngine) -> None:
    loop = asyncio.get_running_loop()
    done = loop.create_future()

    def _resolve() -> None:
        if not done.done():
            done.set_result(None)

    def _on_complete() -> None:
        loop.call_soon_threadsafe(_resolve)

    engine.flush(_on_complete)
    await done


class _LevelMethods(abc.ABC):
    """Level methods shared by the root facade and its children."""

    @abc.abstractmethod
    def _engine(self) -> LogEngine:
        """Return the engine handle records are emitted through."""

    @abc.abstractmethod
    def _merge(self, call_context: dict[str, Any]) -> dict[str, Any]:
        """Return the fields to log for `call_context`."""

    def _log(self, severity: str, message: str, call_context: dict[str, Any]) -> None:
        engine = self._engine()
        engine.emit(severity, self._merge(call_context), message)

    def _log_error(
        self, severity: str, err: Any, message: str, call_context: dict[str, Any]
    ) -> None:
        engine = self._engine()
        error = format_error(ensure_error(err))
        engine.emit(severity, self._merge({**call_context, "error": error}), message)

    def trace(self, message: str, context: LogContext | None = None, **fields: Any) -> None:
        self._log("trace", message, _call_context(context, fields))

    def debug(self, message: str, context: LogContext | None = None, **fields: Any) -> None:
        self._log("debug", message, _call_context(context, fields))

    def info(self, message: str, context: LogContext | None = None, **fields: Any) -> None:
        self._log("info", message, _call_context(context, fields))

    def warn(self, message: str, context: LogContext | None = None, **fields: Any) -> None:
        self._log("warn", message, _call_context(context, fields))

    warning = warn

    def error(
        self, err: Any, message: str, context: LogContext | None = None, **fields: Any
    ) -> None:
        self._log_error("error", err, message, _call_context(context, fields))

    def fatal(
        self, err: Any, message: str, context: LogContext | None = None, **fields: Any
    ) -> None:
        self._log_error("fatal", err, message, _call_context(context, fields))

    critical = fatal

    def child(self, bindings: LogContext | None = None, **fields: Any) -> "ChildLogger":
        return ChildLogger(self._engine().child(_call_context(bindings, fields)))

    @property
    def raw(self) -> Any:
        """The underlying structlog logger."""
        return self._engine().bound

    async def flush(self) -> None:
        """Wait until the engine reports every buffered record as written.

        There is no timeout: if the engine never calls back, this never returns.
        """
        await _await_flush(self._engine())


class ContextLogger(_LevelMethods):
    def __init__(self, state: LogFacadeState | None = None) -> None:
        self.state = state if state is not None else LogFacadeState()

    def initialize(self, **options: Any) -> None:
        """Create the engine from DEFAULT_OPTIONS overridden by `options`.

        Once an engine exists, later calls are ignored, whatever their options.
        """
        if self.state.engine is None:
            self.state.engine = self.state.engine_factory(merge_options(options))

    def _ensure_initialized(self) -> LogEngine:
        if self.state.engine is None:
            self.initialize()
        return self.state.engine  # type: ignore[return-value]

    _engine = _ensure_initialized

    @property
    def options(self) -> LoggerOptions:
        return self._ensure_initialized().options

    @property
    def context(self) -> dict[str, Any]:
        return dict(self.state.context)

    def set_context(self, context: LogContext | None = None, **fields: Any) -> None:
        self._ensure_initialized()
        self.state.context.update(_call_context(context, fields))

    def clear_context(self) -> None:
        self._ensure_initialized()
        self.state.context = {}

    def merge_context(self, call_context: LogContext | None = None) -> dict[str, Any]:
        return {**self.state.context, **(call_context or {})}

    _merge = merge_context


class ChildLogger(_LevelMethods):
    """Logger over a derived engine handle with fixed bindings."""

    def __init__(self, engine: LogEngine) -> None:
        self._handle = engine

    def _engine(self) -> LogEngine:
        return self._handle

    def _merge(self, call_context: dict[str, Any]) -> dict[str, Any]:
        return dict(call_context)


_process_logger = ContextLogger()


def get_logger() -> ContextLogger:
    """Return the process-wide facade."""
    return _process_logger
