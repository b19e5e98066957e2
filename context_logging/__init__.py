"""Structured logging facade with global context and error normalization.

See `DESIGN.md` for design intent and known sharp edges.
"""

__all__ = [
    "__version__",
    "ChildLogger",
    "CoercedError",
    "ContextLogger",
    "DEFAULT_OPTIONS",
    "LogEngine",
    "LogFacadeState",
    "LoggerOptions",
    "RedactOptions",
    "create_engine",
    "ensure_error",
    "format_error",
    "get_logger",
    "options_from_env",
]

try:
    from importlib.metadata import version as _pkg_version

    __version__ = _pkg_version("context-logging")
except Exception:  # pragma: no cover
    __version__ = "0.0.0"

from context_logging.config import (  # noqa: E402  (intentional re-export)
    DEFAULT_OPTIONS,
    LoggerOptions,
    RedactOptions,
    options_from_env,
)
from context_logging.engine import LogEngine, create_engine  # noqa: E402
from context_logging.errors import CoercedError, ensure_error, format_error  # noqa: E402
from context_logging.facade import (  # noqa: E402
    ChildLogger,
    ContextLogger,
    LogFacadeState,
    get_logger,
)
