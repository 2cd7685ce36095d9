"""Tests for the schema registry and structural validation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from jsonschema.exceptions import SchemaError as InvalidSchema

from provcore.contracts import (
    JsonSchemaValidator,
    SchemaError,
    SchemaNotFoundError,
    SchemaRegistry,
    SchemaViolation,
    get_registry,
    load_manifest_schema,
    validate_schema,
    validate_schema_or_raise,
)


def _valid_document() -> dict:
    return {
        "version": 1,
        "repo": "acme/provenance",
        "commit": "0123457",
        "workflow_run": {"id": 1, "url": "https://example.com/run/1", "attempt": 1},
        "front_page": {"title": "T", "markup": "ci/front_page.pml"},
        "artifacts": [
            {
                "id": "tests-summary",
                "title": "Test Summary",
                "path": "ci/tests/summary.json",
                "media_type": "application/json",
                "render": "summary:test",
                "sha256": "a" * 64,
            }
        ],
    }


class TestSchemaRegistry:
    """Test the bundled schema registry."""

    def test_manifest_schema_registered(self):
        """The manifest schema v1 ships with the package."""
        registry = get_registry()
        assert "manifest" in registry.list_document_types()
        assert 1 in registry.list_versions("manifest")

    def test_latest_version_default(self):
        """Without a version the latest schema is returned."""
        ref = get_registry().get_schema("manifest")
        assert ref.version == max(get_registry().list_versions("manifest"))
        assert ref.load()["type"] == "object"

    def test_unknown_version(self):
        """Unknown revisions raise SchemaNotFoundError."""
        with pytest.raises(SchemaNotFoundError):
            get_registry().get_schema("manifest", 99)

    def test_unknown_type(self):
        """Unknown document types raise SchemaNotFoundError."""
        with pytest.raises(SchemaNotFoundError):
            get_registry().get_schema("verdict")

    def test_custom_schemas_dir(self, tmp_path: Path):
        """A registry can index a caller-provided directory."""
        schema_dir = tmp_path / "manifest" / "v2"
        schema_dir.mkdir(parents=True)
        (schema_dir / "manifest.schema.json").write_text(json.dumps({"type": "object"}))
        (tmp_path / "manifest" / "vX").mkdir()

        registry = SchemaRegistry(tmp_path)
        assert registry.list_versions("manifest") == [2]


class TestSchemaValidation:
    """Test schema validation of manifest documents."""

    def test_valid_document(self):
        """The example document has no violations."""
        assert validate_schema(_valid_document(), load_manifest_schema()) == []

    def test_missing_artifacts(self):
        """A manifest without artifacts fails."""
        doc = _valid_document()
        del doc["artifacts"]
        violations = validate_schema(doc, load_manifest_schema())
        assert len(violations) == 1
        assert violations[0].path == "<root>"
        assert "artifacts" in violations[0].message

    def test_all_violations_reported(self):
        """Every violation is reported, with instance paths."""
        doc = _valid_document()
        doc["version"] = "one"
        doc["artifacts"][0]["render"] = "pdf"
        doc["artifacts"][0]["sha256"] = "xyz"
        paths = [v.path for v in validate_schema(doc, load_manifest_schema())]
        assert "<root>.version" in paths
        assert "<root>.artifacts[0].render" in paths
        assert "<root>.artifacts[0].sha256" in paths

    def test_violation_order_is_stable(self):
        """Violations are sorted by path then message."""
        doc = _valid_document()
        doc["repo"] = 5
        doc["commit"] = 6
        violations = validate_schema(doc, load_manifest_schema())
        assert violations == sorted(violations, key=lambda v: (v.path, v.message))

    def test_workflow_run_id_string_or_number(self):
        """workflow_run.id may be a string or an integer."""
        doc = _valid_document()
        doc["workflow_run"]["id"] = "run-77"
        assert validate_schema(doc, load_manifest_schema()) == []
        doc["workflow_run"]["id"] = [1]
        assert validate_schema(doc, load_manifest_schema()) != []

    def test_additional_properties_rejected(self):
        """Unknown fields are not aliased or ignored."""
        doc = _valid_document()
        doc["artifacts"][0]["mediaType"] = "text/plain"
        violations = validate_schema(doc, load_manifest_schema())
        assert any("mediaType" in v.message for v in violations)

    def test_non_object_document(self):
        """A top-level array is a schema violation, not a crash."""
        violations = validate_schema([], load_manifest_schema())
        assert violations and violations[0].path == "<root>"

    def test_validator_reused(self):
        """A compiled validator can check many documents."""
        validator = JsonSchemaValidator(load_manifest_schema())
        assert validator.validate(_valid_document()) == []
        assert validator.validate({}) != []
        assert validator.validate(_valid_document()) == []

    def test_invalid_schema_rejected_at_compile(self):
        """A broken schema fails before any document is judged."""
        with pytest.raises(InvalidSchema):
            JsonSchemaValidator({"type": "no-such-type"})

    def test_validate_or_raise(self):
        """SchemaError carries every violation."""
        with pytest.raises(SchemaError) as exc_info:
            validate_schema_or_raise({}, load_manifest_schema())
        assert exc_info.value.violations
        assert all(isinstance(v, SchemaViolation) for v in exc_info.value.errors)
