"""Semantic validation: manifest rules a JSON Schema cannot express.

Runs after schema validation. All violations are collected in manifest
order so one pass reports every problem.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from provcore.contracts.validate import ValidationError
from provcore.provenance.manifest import RENDER_KINDS, Manifest
from provcore.security import has_traversal_segment, is_absolute_reference, is_within

logger = logging.getLogger(__name__)

_LOWER_HEX_DIGITS = frozenset("0123456789abcdef")


class SemanticErrorKind(Enum):
    """Kinds of semantic violation."""

    DUPLICATE_ID = "DUPLICATE_ID"
    PATH_ESCAPE = "PATH_ESCAPE"
    UNKNOWN_RENDER_KIND = "UNKNOWN_RENDER_KIND"
    MALFORMED_DIGEST = "MALFORMED_DIGEST"


@dataclass(frozen=True)
class SemanticViolation:
    """A single broken business rule, tied to the artifact that broke it."""

    kind: SemanticErrorKind
    artifact_id: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "kind": self.kind.value,
            "artifact_id": self.artifact_id,
            "message": self.message,
        }


class SemanticValidationError(ValidationError):
    """Raised when a manifest breaks one or more semantic rules."""

    def __init__(self, violations: list[SemanticViolation]):
        super().__init__(
            f"Semantic validation failed with {len(violations)} errors",
            list(violations),
        )
        self.violations = list(violations)


def is_well_formed_digest(value: str) -> bool:
    """Exactly 64 lowercase ASCII hex digits."""
    return len(value) == 64 and all(c in _LOWER_HEX_DIGITS for c in value)


def check_artifact_path(path: str, root_dir: Path) -> str | None:
    """Return a reason if path may escape root_dir, else None.

    The textual checks need no filesystem; the resolved check follows
    symlinks for whatever part of the path exists on disk.
    """
    if is_absolute_reference(path):
        return f"artifact path must be repo-relative, got: {path}"
    if "\x00" in path:
        return f"artifact path must not contain NUL: {path!r}"
    if has_traversal_segment(path):
        return f"artifact path must not contain '..': {path}"
    if not is_within(root_dir / path, root_dir):
        return f"artifact path escapes root: {path}"
    return None


def validate_semantics(manifest: Manifest, root_dir: Path) -> list[SemanticViolation]:
    """Check unique ids, safe paths, known render kinds and digest shape.

    Returns:
        Violations in manifest order (empty if valid)
    """
    violations: list[SemanticViolation] = []
    seen: set[str] = set()

    for artifact in manifest.artifacts:
        if artifact.id in seen:
            violations.append(SemanticViolation(
                kind=SemanticErrorKind.DUPLICATE_ID,
                artifact_id=artifact.id,
                message=f"duplicate artifact id: {artifact.id}",
            ))
        seen.add(artifact.id)

        reason = check_artifact_path(artifact.path, root_dir)
        if reason is not None:
            violations.append(SemanticViolation(
                kind=SemanticErrorKind.PATH_ESCAPE,
                artifact_id=artifact.id,
                message=reason,
            ))

        if artifact.render not in RENDER_KINDS:
            violations.append(SemanticViolation(
                kind=SemanticErrorKind.UNKNOWN_RENDER_KIND,
                artifact_id=artifact.id,
                message=f"unknown render: {artifact.render} for id {artifact.id}",
            ))

        if not is_well_formed_digest(artifact.sha256):
            violations.append(SemanticViolation(
                kind=SemanticErrorKind.MALFORMED_DIGEST,
                artifact_id=artifact.id,
                message=f"invalid sha256 for id {artifact.id}: {artifact.sha256!r}",
            ))

    for violation in violations:
        logger.debug("Semantic violation: %s", violation)
    return violations


def check_semantics(manifest: Manifest, root_dir: Path) -> None:
    """Validate semantics and raise if any rule is broken.

    Raises:
        SemanticValidationError: Carrying every violation found
    """
    violations = validate_semantics(manifest, root_dir)
    if violations:
        raise SemanticValidationError(violations)
