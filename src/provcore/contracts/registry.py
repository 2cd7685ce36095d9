"""Schema registry for manifest contract revisions.

Schemas live under ``provcore/schemas/<document_type>/v<N>/<document_type>.schema.json``;
``N`` matches the manifest's integer ``version`` field.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any


class SchemaNotFoundError(LookupError):
    """Raised when no schema is registered for a document type/revision."""
    pass


@dataclass(frozen=True)
class SchemaRef:
    """Reference to a schema file."""

    document_type: str
    version: int
    path: Path

    def load(self) -> dict[str, Any]:
        """Load and return the schema as a dictionary."""
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)


class SchemaRegistry:
    """Registry of bundled schemas, keyed by document type and revision."""

    def __init__(self, schemas_dir: Path | None = None):
        self._refs: dict[str, dict[int, SchemaRef]] = {}

        if schemas_dir is None:
            # Default to package schemas directory
            schemas_dir = Path(__file__).parent.parent / "schemas"

        self.schemas_dir = schemas_dir
        self._load_schemas()

    def _load_schemas(self) -> None:
        """Index all schemas found in the schemas directory."""
        if not self.schemas_dir.exists():
            return

        for type_dir in sorted(self.schemas_dir.iterdir()):
            if not type_dir.is_dir():
                continue

            document_type = type_dir.name
            for version_dir in sorted(type_dir.iterdir()):
                if not version_dir.is_dir() or not version_dir.name.startswith("v"):
                    continue
                try:
                    version = int(version_dir.name[1:])
                except ValueError:
                    continue

                schema_file = version_dir / f"{document_type}.schema.json"
                if schema_file.exists():
                    self._refs.setdefault(document_type, {})[version] = SchemaRef(
                        document_type=document_type,
                        version=version,
                        path=schema_file,
                    )

    def list_document_types(self) -> list[str]:
        """List all registered document types."""
        return sorted(self._refs.keys())

    def list_versions(self, document_type: str) -> list[int]:
        """List registered revisions for a document type."""
        return sorted(self._refs.get(document_type, {}).keys())

    def get_schema(self, document_type: str, version: int | None = None) -> SchemaRef:
        """Get schema for a document type and revision.

        If version is None, returns the latest revision.
        """
        versions = self._refs.get(document_type)
        if not versions:
            raise SchemaNotFoundError(f"Unknown document type: {document_type}")
        if version is None:
            version = max(versions)
        if version not in versions:
            raise SchemaNotFoundError(
                f"No schema for {document_type} v{version} "
                f"(known: {', '.join(f'v{v}' for v in sorted(versions))})"
            )
        return versions[version]


# Global registry instance
_registry: SchemaRegistry | None = None


def get_registry() -> SchemaRegistry:
    """Get the global schema registry."""
    global _registry
    if _registry is None:
        _registry = SchemaRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (mainly for testing)."""
    global _registry
    _registry = None


def load_schema(path: Path) -> dict[str, Any]:
    """Load a caller-supplied schema document."""
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def load_manifest_schema(version: int | None = None) -> dict[str, Any]:
    """Load the bundled manifest schema for a revision (latest if None)."""
    return get_registry().get_schema("manifest", version).load()
