"""Evidence manifest data model and loading."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from provcore.security import SecurityLimits, safe_load_json

logger = logging.getLogger(__name__)

# Renderer kinds understood by the site generator. Closed set: anything else
# is a semantic error.
RENDER_KINDS = frozenset({
    "markdown",
    "json",
    "table:coverage",
    "summary:test",
    "image",
    "repo:file",
    "repo:bundle",
    "repo:symbols",
})

DEFAULT_MANIFEST_PATH = Path(".provenance") / "manifest.json"


class ManifestError(Exception):
    """Base error for manifest handling."""
    pass


class ParseError(ManifestError):
    """Manifest file could not be read or is not strict JSON."""
    pass


@dataclass(frozen=True)
class WorkflowRun:
    """CI run that produced the bundle. Not integrity-checked beyond type."""

    id: str | int
    url: str
    attempt: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"id": self.id, "url": self.url, "attempt": self.attempt}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WorkflowRun:
        """Create from dictionary."""
        return cls(id=data["id"], url=data["url"], attempt=data["attempt"])


@dataclass(frozen=True)
class FrontPage:
    """Pointer to the front-page markup document."""

    title: str
    markup: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"title": self.title, "markup": self.markup}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FrontPage:
        """Create from dictionary."""
        return cls(title=data["title"], markup=data["markup"])


@dataclass(frozen=True)
class Artifact:
    """One evidence file listed in the manifest."""

    id: str
    title: str
    path: str
    media_type: str
    render: str
    sha256: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "path": self.path,
            "media_type": self.media_type,
            "render": self.render,
            "sha256": self.sha256,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Artifact:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            title=data["title"],
            path=data["path"],
            media_type=data["media_type"],
            render=data["render"],
            sha256=data["sha256"],
        )


@dataclass(frozen=True)
class Manifest:
    """The signed unit of trust: provenance metadata plus ordered artifacts."""

    version: int
    repo: str
    commit: str
    workflow_run: WorkflowRun
    front_page: FrontPage
    artifacts: tuple[Artifact, ...] = field(default_factory=tuple)

    def get_artifact(self, artifact_id: str) -> Artifact | None:
        """Return the first artifact with the given id, if any."""
        for artifact in self.artifacts:
            if artifact.id == artifact_id:
                return artifact
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "version": self.version,
            "repo": self.repo,
            "commit": self.commit,
            "workflow_run": self.workflow_run.to_dict(),
            "front_page": self.front_page.to_dict(),
            "artifacts": [a.to_dict() for a in self.artifacts],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Manifest:
        """Create from a document that already passed schema validation."""
        return cls(
            version=data["version"],
            repo=data["repo"],
            commit=data["commit"],
            workflow_run=WorkflowRun.from_dict(data["workflow_run"]),
            front_page=FrontPage.from_dict(data["front_page"]),
            artifacts=tuple(Artifact.from_dict(a) for a in data["artifacts"]),
        )


def parse_manifest_text(text: bytes | str, limits: SecurityLimits | None = None) -> Any:
    """Parse manifest text into a raw JSON document.

    Raises:
        ParseError: If the text is not strict JSON
        SecurityError: If size or depth limits are exceeded
    """
    try:
        return safe_load_json(text, limits)
    except ValueError as e:
        raise ParseError(f"Invalid manifest JSON: {e}") from e


def load_document(path: Path, limits: SecurityLimits | None = None) -> Any:
    """Read and parse a manifest file into its raw JSON document.

    The raw document (not the dataclasses) is what gets canonicalized and
    signed, so it is returned untouched.
    """
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ParseError(f"Cannot read manifest at {path}: {e}") from e
    logger.debug("Loaded manifest %s (%d bytes)", path, len(data))
    return parse_manifest_text(data, limits)


def write_document(document: Any, path: Path) -> None:
    """Write a manifest document as pretty JSON with a trailing newline."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(json.dumps(document, indent=2, ensure_ascii=False))
        f.write("\n")


def refresh_digests(
    document: dict[str, Any],
    root_dir: Path,
    chunk_size: int | None = None,
) -> tuple[dict[str, Any], dict[str, str]]:
    """Recompute every artifact's sha256 from the files under root_dir.

    The input document is left untouched; a new document is returned together
    with a mapping of artifact id to new digest for the entries that changed.

    Raises:
        FileNotFoundError: If an artifact file is missing
        ManifestError: If the document has no artifact list
    """
    from provcore.provenance.content import DEFAULT_CHUNK_SIZE, sha256_file

    artifacts = document.get("artifacts")
    if not isinstance(artifacts, list):
        raise ManifestError("manifest.artifacts must be an array")

    updated = copy.deepcopy(document)
    changes: dict[str, str] = {}
    for entry in updated["artifacts"]:
        if not isinstance(entry, dict) or not isinstance(entry.get("path"), str):
            raise ManifestError(f"Artifact entry without a path: {entry!r}")
        digest = sha256_file(root_dir / entry["path"], chunk_size or DEFAULT_CHUNK_SIZE)
        if entry.get("sha256") != digest:
            changes[str(entry.get("id", entry["path"]))] = digest
        entry["sha256"] = digest
        logger.debug("%s => %s", entry.get("id"), digest)

    return updated, changes
