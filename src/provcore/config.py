"""
Configuration for manifest verification runs.

Supports:
- Environment variable configuration
- YAML file configuration
- Runtime overrides (CLI options)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from provcore.provenance.content import DEFAULT_CHUNK_SIZE
from provcore.provenance.manifest import DEFAULT_MANIFEST_PATH
from provcore.security import DEFAULT_MAX_JSON_DEPTH, DEFAULT_MAX_JSON_SIZE, SecurityLimits

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigError(ValueError):
    """Invalid verification configuration."""
    pass


@dataclass
class VerifierConfig:
    """
    Settings for one verification run.

    Defaults verify the manifest at ``.provenance/manifest.json`` under the
    current directory, without a signature check, sequentially.
    """

    root: Path = field(default_factory=lambda: Path("."))
    manifest: Path = DEFAULT_MANIFEST_PATH
    schema_path: Path | None = None
    signature_path: Path | None = None
    public_key: str | None = None
    verify_signature: bool = False
    max_workers: int = 1
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_json_depth: int = DEFAULT_MAX_JSON_DEPTH
    max_json_size: int = DEFAULT_MAX_JSON_SIZE

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.max_workers < 1:
            raise ConfigError(f"max_workers must be >= 1, got {self.max_workers}")
        if self.chunk_size <= 0:
            raise ConfigError(f"chunk_size must be > 0, got {self.chunk_size}")

    def check_ready(self) -> None:
        """Checks that only make sense once every source has been applied."""
        if self.verify_signature and not self.public_key:
            raise ConfigError("verify_signature requires a public key")

    @property
    def manifest_path(self) -> Path:
        """Manifest location; relative paths are taken from the root."""
        if self.manifest.is_absolute():
            return self.manifest
        return self.root / self.manifest

    @property
    def limits(self) -> SecurityLimits:
        return SecurityLimits(max_json_depth=self.max_json_depth, max_json_size=self.max_json_size)

    def resolve_public_key(self) -> str | None:
        """Public key text: file contents if ``public_key`` names a file, else the literal."""
        if self.public_key is None:
            return None
        candidate = Path(self.public_key)
        try:
            if candidate.is_file():
                return candidate.read_text(encoding="utf-8").strip()
        except (OSError, ValueError):
            pass
        return self.public_key.strip()

    def with_overrides(self, **overrides: Any) -> VerifierConfig:
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    @classmethod
    def from_env(cls, base: VerifierConfig | None = None) -> VerifierConfig:
        """
        Apply environment variables on top of a base configuration.

        Environment variables:
            PROVCORE_ROOT: Evidence root directory
            PROVCORE_MANIFEST: Manifest path (relative to root)
            PROVCORE_SCHEMA: Schema file overriding the bundled schema
            PROVCORE_PUBLIC_KEY: Public key text or key file path
            PROVCORE_VERIFY_SIGNATURE: Require signature check (true/false)
            PROVCORE_MAX_WORKERS: Parallel content verification workers
        """
        base = base or cls()
        overrides: dict[str, Any] = {}

        if root := os.getenv("PROVCORE_ROOT"):
            overrides["root"] = Path(root)
        if manifest := os.getenv("PROVCORE_MANIFEST"):
            overrides["manifest"] = Path(manifest)
        if schema := os.getenv("PROVCORE_SCHEMA"):
            overrides["schema_path"] = Path(schema)
        if public_key := os.getenv("PROVCORE_PUBLIC_KEY"):
            overrides["public_key"] = public_key
        if verify := os.getenv("PROVCORE_VERIFY_SIGNATURE"):
            overrides["verify_signature"] = verify.lower() in _TRUE_VALUES
        if workers := os.getenv("PROVCORE_MAX_WORKERS"):
            try:
                overrides["max_workers"] = int(workers)
            except ValueError as e:
                raise ConfigError(f"PROVCORE_MAX_WORKERS must be an integer, got {workers!r}") from e

        return base.with_overrides(**overrides)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VerifierConfig:
        """Create configuration from dictionary (e.g., YAML)."""
        known = {
            "root", "manifest", "schema_path", "signature_path", "public_key",
            "verify_signature", "max_workers", "chunk_size", "max_json_depth", "max_json_size",
        }
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        kwargs: dict[str, Any] = dict(data)
        for key in ("root", "manifest", "schema_path", "signature_path"):
            if kwargs.get(key) is not None:
                kwargs[key] = Path(kwargs[key])

        for key in ("max_workers", "chunk_size", "max_json_depth", "max_json_size"):
            if key in kwargs:
                value = kwargs[key]
                if isinstance(value, bool):
                    raise ConfigError(f"{key} must be an integer, got {value!r}")
                try:
                    kwargs[key] = int(value)
                except (TypeError, ValueError) as e:
                    raise ConfigError(f"{key} must be an integer, got {value!r}") from e

        if "verify_signature" in kwargs:
            value = kwargs["verify_signature"]
            if isinstance(value, str):
                kwargs["verify_signature"] = value.lower() in _TRUE_VALUES
            elif not isinstance(value, bool):
                raise ConfigError(f"verify_signature must be a boolean, got {value!r}")

        public_key = kwargs.get("public_key")
        if public_key is not None and not isinstance(public_key, str):
            raise ConfigError(f"public_key must be a string, got {type(public_key).__name__}")

        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: Path) -> VerifierConfig:
        """Load configuration from a YAML file."""
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {path}")
        return cls.from_dict(data)

    @classmethod
    def load(cls, path: Path | None = None) -> VerifierConfig:
        """Defaults, then the YAML file if given, then the environment."""
        base = cls.from_yaml(path) if path is not None else cls()
        return cls.from_env(base)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "root": str(self.root),
            "manifest": str(self.manifest),
            "schema_path": str(self.schema_path) if self.schema_path else None,
            "signature_path": str(self.signature_path) if self.signature_path else None,
            "public_key": self.public_key,
            "verify_signature": self.verify_signature,
            "max_workers": self.max_workers,
            "chunk_size": self.chunk_size,
            "max_json_depth": self.max_json_depth,
            "max_json_size": self.max_json_size,
        }
