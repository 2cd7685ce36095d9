"""Contracts module for provenance-core.

This module provides the bundled manifest schemas and structural validation.
"""

from provcore.contracts.registry import (
    SchemaNotFoundError,
    SchemaRef,
    SchemaRegistry,
    get_registry,
    load_manifest_schema,
    load_schema,
)
from provcore.contracts.validate import (
    JsonSchemaValidator,
    SchemaError,
    SchemaValidator,
    SchemaViolation,
    ValidationError,
    validate_schema,
    validate_schema_or_raise,
)

__all__ = [
    "JsonSchemaValidator",
    "SchemaError",
    "SchemaNotFoundError",
    "SchemaRef",
    "SchemaRegistry",
    "SchemaValidator",
    "SchemaViolation",
    "ValidationError",
    "get_registry",
    "load_manifest_schema",
    "load_schema",
    "validate_schema",
    "validate_schema_or_raise",
]
