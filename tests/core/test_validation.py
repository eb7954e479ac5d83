"""Tests for schema validation helpers."""

import pytest

from stepcache.core.validation import ConfigurationError, raise_for_schema, validate_schema

SCHEMA = {
    "type": "object",
    "properties": {"workers": {"type": "integer", "minimum": 1}},
    "additionalProperties": False,
}


def test_valid_data_has_no_messages():
    assert list(validate_schema({"workers": 2}, SCHEMA)) == []


def test_messages_include_context_and_path():
    errors = list(validate_schema({"workers": 0}, SCHEMA, context="settings:default"))

    assert len(errors) == 1
    assert errors[0].format().startswith("settings:default.workers: ")


def test_raise_for_schema_joins_messages():
    with pytest.raises(ConfigurationError) as exc_info:
        raise_for_schema({"workers": "two", "extra": True}, SCHEMA, context="settings")

    message = str(exc_info.value)
    assert "extra" in message
    assert "workers" in message
