"""Structural validation of manifest documents against a JSON Schema.

Schema evaluation is delegated to ``jsonschema``; this module only adapts
its errors into ``SchemaViolation`` records and fixes their order so that
reports are reproducible.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from jsonschema import validators
from jsonschema.exceptions import ValidationError as JsonSchemaError


class ValidationError(Exception):
    """Error raised when a document fails validation."""

    def __init__(self, message: str, errors: list[Any] | None = None):
        super().__init__(message)
        self.errors = errors or []


@dataclass(frozen=True)
class SchemaViolation:
    """A single structural violation reported by the schema validator."""

    path: str
    message: str
    validator: str = ""

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary."""
        return {"path": self.path, "message": self.message, "validator": self.validator}


class SchemaError(ValidationError):
    """Raised when a manifest does not satisfy its schema."""

    def __init__(self, violations: list[SchemaViolation]):
        super().__init__(
            f"Schema validation failed with {len(violations)} errors",
            list(violations),
        )
        self.violations = list(violations)


class SchemaValidator(Protocol):
    """Anything that can check a parsed document against a fixed schema."""

    def validate(self, document: Any) -> list[SchemaViolation]:
        ...


def _format_path(error: JsonSchemaError) -> str:
    parts = ["<root>"]
    for part in error.absolute_path:
        if isinstance(part, int):
            parts[-1] += f"[{part}]"
        else:
            parts.append(str(part))
    return ".".join(parts)


class JsonSchemaValidator:
    """Schema validator compiled once and reused across documents.

    The draft is chosen from the schema's ``$schema`` keyword, and the
    schema itself is checked when the validator is built.
    """

    def __init__(self, schema: dict[str, Any]) -> None:
        validator_cls = validators.validator_for(schema)
        validator_cls.check_schema(schema)
        self._validator = validator_cls(schema)

    def validate(self, document: Any) -> list[SchemaViolation]:
        """Return every violation, ordered by instance path then message."""
        violations = [
            SchemaViolation(
                path=_format_path(error),
                message=error.message,
                validator=str(error.validator),
            )
            for error in self._validator.iter_errors(document)
        ]
        return sorted(violations, key=lambda v: (v.path, v.message))


def validate_schema(document: Any, schema: dict[str, Any]) -> list[SchemaViolation]:
    """Validate a document against a schema in a single call.

    Returns:
        List of violations (empty if valid)
    """
    return JsonSchemaValidator(schema).validate(document)


def validate_schema_or_raise(document: Any, schema: dict[str, Any]) -> None:
    """Validate a document and raise SchemaError if it has violations."""
    violations = validate_schema(document, schema)
    if violations:
        raise SchemaError(violations)
