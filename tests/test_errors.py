import json
from collections import OrderedDict

import pytest

from context_logging.errors import CoercedError, ensure_error, format_error


class _Unprintable:
    def __str__(self):
        raise RuntimeError("no str")


class _ExplodingMapping(dict):
    def items(self):
        raise RuntimeError("no items")

    def get(self, key, default=None):
        raise RuntimeError("no get")


def _circular():
    data = {"name": "loop"}
    data["self"] = data
    return data


@pytest.mark.parametrize(
    "value",
    [
        ValueError("x"),
        ValueError(),
        "text",
        "",
        {"message": "with message", "code": 7},
        {"custom": "e", "reason": "t"},
        {},
        _circular(),
        OrderedDict(a=1),
        None,
        42,
        3.5,
        ["a", 1],
        object(),
        _Unprintable(),
        _ExplodingMapping(a=1),
    ],
)
def test_ensure_error_is_total(value):
    error = ensure_error(value)
    formatted = format_error(error)

    assert isinstance(error, BaseException)
    assert formatted["message"]
    assert formatted["stack_trace"]
    assert formatted["type"]


def test_exception_passes_through_unchanged():
    err = KeyError("k")
    assert ensure_error(err) is err


def test_string_becomes_message():
    error = ensure_error("something broke")
    assert isinstance(error, CoercedError)
    assert str(error) == "something broke"


def test_mapping_with_message_keeps_extra_fields():
    error = ensure_error({"message": "denied", "code": "E_AUTH", "status": 403})
    formatted = format_error(error)

    assert formatted["message"] == "denied"
    assert formatted["code"] == "E_AUTH"
    assert formatted["status"] == 403
    assert formatted["type"] == "CoercedError"


def test_mapping_with_non_text_message_is_serialized():
    error = ensure_error({"message": 12})
    assert json.loads(str(error)) == {"message": 12}


def test_mapping_without_message_is_serialized():
    error = ensure_error({"custom": "e", "reason": "t"})
    assert json.loads(str(error)) == {"custom": "e", "reason": "t"}


def test_unserializable_values_fall_back_to_repr():
    error = ensure_error({"when": object})
    assert "when" in json.loads(str(error))


def test_none_and_scalars_are_stringified():
    assert str(ensure_error(None)) == "None"
    assert str(ensure_error(42)) == "42"


def test_reserved_fields_are_not_copied():
    error = ensure_error({"message": "m", "type": "custom", "stack_trace": "fake"})
    formatted = format_error(error)

    assert formatted["type"] == "CoercedError"
    assert formatted["stack_trace"] != "fake"


def test_format_error_of_raised_exception_has_traceback():
    try:
        raise ValueError("raised")
    except ValueError as exc:
        formatted = format_error(exc)

    assert formatted["type"] == "ValueError"
    assert formatted["message"] == "raised"
    assert "Traceback (most recent call last)" in formatted["stack_trace"]
    assert "test_format_error_of_raised_exception_has_traceback" in formatted["stack_trace"]


def test_format_error_includes_cause_chain():
    try:
        try:
            raise KeyError("inner")
        except KeyError as inner:
            raise RuntimeError("outer") from inner
    except RuntimeError as exc:
        formatted = format_error(exc)

    assert "KeyError" in formatted["stack_trace"]
    assert "RuntimeError: outer" in formatted["stack_trace"]


def test_format_error_flattens_instance_attributes():
    err = OSError("disk")
    err.path = "/tmp/x"
    err._attempt = 3

    formatted = format_error(err)

    assert formatted["path"] == "/tmp/x"
    assert formatted["_attempt"] == 3
    assert set(formatted) >= {"type", "message", "stack_trace"}


def test_coerced_error_captures_creation_stack():
    formatted = format_error(ensure_error("never raised"))

    assert "test_coerced_error_captures_creation_stack" in formatted["stack_trace"]
    assert formatted["stack_trace"].rstrip().endswith("CoercedError: never raised")


def test_empty_message_falls_back_to_type_name():
    assert format_error(ValueError())["message"] == "ValueError"


def test_underscore_fields_from_mapping_survive():
    formatted = format_error(ensure_error({"message": "m", "_id": 7}))

    assert formatted["message"] == "m"
    assert formatted["_id"] == 7
