"""Schema validation helpers for settings and graph files."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from jsonschema import Draft7Validator

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping


class ConfigurationError(ValueError):
    """Raised when configuration is invalid or unsupported."""

    pass


@dataclass
class ValidationMessage:
    message: str
    context: str | None = None
    path: tuple[Any, ...] = ()

    def format(self) -> str:
        location = ".".join(str(part) for part in self.path)
        prefix = self.context or ""
        if location:
            prefix = f"{prefix}.{location}" if prefix else location
        return f"{prefix}: {self.message}" if prefix else self.message


def validate_schema(
    data: Any,
    schema: Mapping[str, Any],
    context: str | None = None,
) -> Iterator[ValidationMessage]:
    """Yield validation messages for ``data`` against a JSON schema.

    Errors are yielded in document order so reports are stable between runs.
    """
    validator = Draft7Validator(schema)
    for error in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path]):
        yield ValidationMessage(
            message=error.message,
            context=context,
            path=tuple(error.absolute_path),
        )


def raise_for_schema(data: Any, schema: Mapping[str, Any], context: str | None = None) -> None:
    errors = list(validate_schema(data, schema, context=context))
    if errors:
        raise ConfigurationError("\n".join(msg.format() for msg in errors))
