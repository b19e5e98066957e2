from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, TextIO, Union

TRACE = 5
FATAL = logging.CRITICAL

logging.addLevelName(TRACE, "TRACE")

LEVELS: dict[str, float] = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": FATAL,
    "silent": math.inf,
}

_LEVEL_ALIASES = {
    "warning": "warn",
    "critical": "fatal",
    "exception": "error",
}

Destination = Union[str, Path, TextIO, None]


def canonical_level(name: str) -> str:
    key = name.strip().lower()
    return _LEVEL_ALIASES.get(key, key)


def resolve_level(name: str) -> float:
    """Map a level name to its numeric severity.

    Raises ValueError for unknown names.
    """
    key = canonical_level(name)
    if key not in LEVELS:
        raise ValueError(f"Unknown log level: {name!r}")
    return LEVELS[key]


def _level_name_or_default(level_name: str, default: str) -> str:
    key = canonical_level(level_name)
    if not key or key not in LEVELS:
        return default
    return key


def _parse_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def iso_time() -> str:
    """Current UTC time as `YYYY-MM-DDTHH:MM:SS.mmmZ`."""
    dt = datetime.now(tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S") + f".{dt.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class RedactOptions:
    paths: tuple[str, ...] = ("password", "token", "authorization", "secret")
    remove: bool = True
    censor: str = "[Redacted]"


@dataclass(frozen=True)
class LoggerOptions:
    level: str = "info"
    destination: Destination = None
    name: str | None = None
    level_formatter: Callable[[str], str] = str.upper
    timestamp: Callable[[], str] | None = iso_time
    redact: RedactOptions = field(default_factory=RedactOptions)
    redact_patterns: bool = True
    max_message_chars: int = 4000


DEFAULT_OPTIONS = LoggerOptions()


def merge_options(overrides: Mapping[str, Any] | None = None) -> LoggerOptions:
    """Override DEFAULT_OPTIONS field by field.

    The merge is shallow: `redact=` replaces all redaction options.
    Unknown option names raise TypeError.
    """
    if not overrides:
        return DEFAULT_OPTIONS
    known = {f.name for f in fields(LoggerOptions)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise TypeError(f"Unknown logger option(s): {', '.join(unknown)}")
    return replace(DEFAULT_OPTIONS, **overrides)


@dataclass(frozen=True)
class EnvContract:
    env_prefix: str

    @property
    def env_log_level(self) -> str:
        return f"{self.env_prefix}_LOG_LEVEL"

    @property
    def env_log_file(self) -> str:
        return f"{self.env_prefix}_LOG_FILE"

    @property
    def env_redact(self) -> str:
        return f"{self.env_prefix}_LOG_REDACT"

    @property
    def env_max_chars(self) -> str:
        return f"{self.env_prefix}_LOG_MAX_CHARS"


def options_from_env(env_prefix: str) -> dict[str, Any]:
    """Read `<PREFIX>_LOG_*` variables into initialize() options.

    Only variables that are set produce an option, so the result can be
    passed straight to `ContextLogger.initialize(**options)`.
    """
    contract = EnvContract(env_prefix=env_prefix.upper())
    options: dict[str, Any] = {}

    level_name = os.getenv(contract.env_log_level)
    if level_name is not None:
        options["level"] = _level_name_or_default(level_name, "info")

    log_file = os.getenv(contract.env_log_file)
    if log_file:
        options["destination"] = Path(log_file).expanduser()

    extra_paths = _parse_csv(os.getenv(contract.env_redact, ""))
    if extra_paths:
        defaults = DEFAULT_OPTIONS.redact
        paths = defaults.paths + tuple(p for p in extra_paths if p not in defaults.paths)
        options["redact"] = replace(defaults, paths=paths)

    max_chars = (os.getenv(contract.env_max_chars) or "").strip()
    if max_chars.isdigit():
        options["max_message_chars"] = int(max_chars)

    return options
