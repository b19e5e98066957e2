"""Normalize arbitrary values into exceptions and project them into log fields."""

from __future__ import annotations

import json
import traceback
from typing import Any, Mapping

_RESERVED_FIELDS = frozenset({"message", "stack_trace", "type"})


class CoercedError(Exception):
    """Exception built from a non-exception value handed to error/fatal.

    It is never raised, so the call stack is captured at construction to give
    the record a usable stack trace.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.stack_trace = "".join(traceback.format_stack()[:-1])


def _safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        pass
    try:
        return repr(value)
    except Exception:
        return f"<unprintable {type(value).__name__}>"


def _to_json(value: Mapping[Any, Any]) -> str:
    try:
        return json.dumps(dict(value), default=repr)
    except (TypeError, ValueError):
        # Circular references or non-string keys that json refuses.
        return _safe_str(value)


def ensure_error(value: Any) -> BaseException:
    """Turn any value into an exception. Never raises."""
    if isinstance(value, BaseException):
        return value

    try:
        if isinstance(value, str):
            return CoercedError(value)

        if isinstance(value, Mapping):
            message = value.get("message")
            if isinstance(message, str):
                error = CoercedError(message)
                for key, item in value.items():
                    name = _safe_str(key)
                    if name not in _RESERVED_FIELDS:
                        error.__dict__[name] = item
                return error
            return CoercedError(_to_json(value))

        return CoercedError(_safe_str(value))
    except Exception as exc:
        # A misbehaving Mapping (e.g. a raising items()) still yields an error.
        return CoercedError(f"<{type(value).__name__}: {_safe_str(exc)}>")


def _render_stack(error: BaseException) -> str:
    captured = error.__dict__.get("stack_trace")
    if isinstance(captured, str) and captured:
        header = "Traceback (most recent call last):\n"
        tail = "".join(traceback.format_exception_only(type(error), error))
        return header + captured + tail
    return "".join(traceback.format_exception(type(error), error, error.__traceback__))


def format_error(error: BaseException) -> dict[str, Any]:
    """Project an exception into a plain record for the `error` field.

    Fixed keys are `type`, `message` and `stack_trace`; every other instance
    attribute is flattened alongside them.
    """
    extra = {key: value for key, value in vars(error).items() if key not in _RESERVED_FIELDS}
    return {
        "type": type(error).__name__,
        "message": _safe_str(error) or type(error).__name__,
        "stack_trace": _render_stack(error),
        **extra,
    }
