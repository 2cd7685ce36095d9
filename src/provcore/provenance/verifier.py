"""Manifest verification pipeline and report."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from provcore.canonical import canonicalize
from provcore.contracts.registry import load_manifest_schema, load_schema
from provcore.contracts.validate import (
    JsonSchemaValidator,
    SchemaError,
    SchemaValidator,
    SchemaViolation,
)
from provcore.provenance.content import DEFAULT_CHUNK_SIZE, verify_artifacts
from provcore.provenance.manifest import DEFAULT_MANIFEST_PATH, Manifest, load_document
from provcore.provenance.semantics import (
    SemanticValidationError,
    SemanticViolation,
    validate_semantics,
)
from provcore.provenance.signing import (
    SignatureMismatchError,
    read_signature_file,
    signature_path_for,
    verify_signature,
)
from provcore.security import SecurityLimits

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArtifactResult:
    """Verification outcome for one artifact."""

    id: str
    verified: bool
    observed_digest: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the external camelCase form."""
        return {
            "id": self.id,
            "verified": self.verified,
            "observedDigest": self.observed_digest,
        }


@dataclass
class VerificationReport:
    """Result of verifying a manifest and its artifacts.

    Structural failures (schema, semantics) leave the later stages unrun:
    ``signature_ok`` stays None and ``artifacts`` stays empty.
    """

    schema_ok: bool = False
    schema_violations: list[SchemaViolation] = field(default_factory=list)
    semantic_ok: bool = False
    semantic_violations: list[SemanticViolation] = field(default_factory=list)
    signature_ok: bool | None = None
    artifacts: list[ArtifactResult] = field(default_factory=list)
    canonical_sha256: str | None = None
    manifest: Manifest | None = None

    @property
    def all_artifacts_verified(self) -> bool:
        """False whenever the content stage did not run."""
        return self.structurally_valid and all(a.verified for a in self.artifacts)

    @property
    def structurally_valid(self) -> bool:
        return self.schema_ok and self.semantic_ok

    @property
    def publishable(self) -> bool:
        """Safe to build a site from: no fatal error and no failed signature.

        Unverified artifacts do not block publishing; they must be marked
        wherever they are shown.
        """
        return self.structurally_valid and self.signature_ok is not False

    def artifact_result(self, artifact_id: str) -> ArtifactResult | None:
        """Look up the result for an artifact id."""
        for result in self.artifacts:
            if result.id == artifact_id:
                return result
        return None

    def raise_for_status(self) -> None:
        """Raise for the fatal outcomes; per-artifact mismatches never raise.

        Raises:
            SchemaError: Schema validation failed
            SemanticValidationError: Semantic validation failed
            SignatureMismatchError: A requested signature did not verify
        """
        if not self.schema_ok:
            raise SchemaError(self.schema_violations)
        if not self.semantic_ok:
            raise SemanticValidationError(self.semantic_violations)
        if self.signature_ok is False:
            raise SignatureMismatchError("manifest signature verification failed")

    def to_dict(self) -> dict[str, Any]:
        """Convert to the external camelCase form consumed by renderers."""
        return {
            "schemaOk": self.schema_ok,
            "schemaViolations": [str(v) for v in self.schema_violations],
            "semanticOk": self.semantic_ok,
            "semanticViolations": [str(v) for v in self.semantic_violations],
            "signatureOk": self.signature_ok,
            "artifacts": [a.to_dict() for a in self.artifacts],
            "allArtifactsVerified": self.all_artifacts_verified,
            "canonicalSha256": self.canonical_sha256,
        }

    def write_json(self, path: Path) -> None:
        """Write to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, sort_keys=True)
            f.write("\n")

    def write_markdown(self, path: Path) -> None:
        """Write to Markdown file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self._generate_markdown())

    def _generate_markdown(self) -> str:
        """Generate markdown report."""
        def mark(flag: bool) -> str:
            return "✅ Yes" if flag else "❌ No"

        lines = [
            "# Manifest Verification Report",
            "",
            f"**Status:** {'✅ PUBLISHABLE' if self.publishable else '❌ REJECTED'}",
        ]
        if self.manifest is not None:
            lines.append(f"**Repository:** {self.manifest.repo} @ `{self.manifest.commit}`")
        if self.canonical_sha256:
            lines.append(f"**Canonical SHA-256:** `{self.canonical_sha256}`")
        lines.extend([
            "",
            "## Summary",
            "",
            f"- **Schema Valid:** {mark(self.schema_ok)}",
            f"- **Semantics Valid:** {mark(self.semantic_ok)}",
        ])

        if self.signature_ok is None:
            lines.append("- **Signature:** not checked")
        else:
            lines.append(f"- **Signature Valid:** {mark(self.signature_ok)}")

        verified = sum(1 for a in self.artifacts if a.verified)
        lines.extend([
            f"- **Artifacts Verified:** {verified}/{len(self.artifacts)}",
            "",
        ])

        if self.schema_violations:
            lines.extend(["## Schema Violations", ""])
            for violation in self.schema_violations:
                lines.append(f"- {violation}")
            lines.append("")

        if self.semantic_violations:
            lines.extend(["## Semantic Violations", ""])
            for violation in self.semantic_violations:
                lines.append(f"- {violation}")
            lines.append("")

        if self.artifacts:
            lines.extend(["## Artifacts", "", "| Artifact | Verified | Observed SHA-256 |", "|---|---|---|"])
            for result in self.artifacts:
                observed = f"`{result.observed_digest}`" if result.observed_digest else "unreadable"
                lines.append(f"| {result.id} | {mark(result.verified)} | {observed} |")
            lines.append("")

        return "\n".join(lines)


class ManifestVerifier:
    """Runs load, canonicalize, schema, semantics, signature and content checks."""

    def __init__(
        self,
        schema_validator: SchemaValidator | None = None,
        limits: SecurityLimits | None = None,
        max_workers: int = 1,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.schema_validator = schema_validator or JsonSchemaValidator(load_manifest_schema())
        self.limits = limits or SecurityLimits()
        self.max_workers = max_workers
        self.chunk_size = chunk_size

    @classmethod
    def from_schema_file(cls, schema_path: Path, **kwargs: Any) -> ManifestVerifier:
        """Build a verifier around a caller-supplied schema file."""
        return cls(schema_validator=JsonSchemaValidator(load_schema(schema_path)), **kwargs)

    def verify_document(
        self,
        document: Any,
        root_dir: Path,
        signature: str | bytes | None = None,
        public_key: str | bytes | None = None,
        signature_path: Path | None = None,
    ) -> VerificationReport:
        """Verify an already-parsed manifest document.

        Signature verification runs only when ``signature`` or
        ``signature_path`` is given. The signature file is read only once the
        manifest has passed the structural stages.

        Raises:
            CryptoError: If signature verification was requested with malformed input
            ValueError: If signature verification was requested without a public key
            OSError: If the signature file cannot be read
        """
        report = VerificationReport()
        canonical_bytes = canonicalize(document)
        report.canonical_sha256 = hashlib.sha256(canonical_bytes).hexdigest()
        logger.debug("Canonical manifest digest %s", report.canonical_sha256)

        report.schema_violations = self.schema_validator.validate(document)
        report.schema_ok = not report.schema_violations
        if not report.schema_ok:
            logger.info("Schema validation failed with %d violations", len(report.schema_violations))
            return report

        manifest = Manifest.from_dict(document)
        report.manifest = manifest

        report.semantic_violations = validate_semantics(manifest, root_dir)
        report.semantic_ok = not report.semantic_violations
        if not report.semantic_ok:
            logger.info("Semantic validation failed with %d violations", len(report.semantic_violations))
            return report

        if signature is not None or signature_path is not None:
            if public_key is None:
                raise ValueError("A public key is required to verify the manifest signature")
            if signature is None:
                signature = read_signature_file(signature_path)
            report.signature_ok = verify_signature(canonical_bytes, signature, public_key)
            logger.debug("Signature verified: %s", report.signature_ok)

        results = verify_artifacts(
            manifest.artifacts,
            root_dir,
            max_workers=self.max_workers,
            chunk_size=self.chunk_size,
        )
        report.artifacts = [
            ArtifactResult(
                id=artifact.id,
                verified=result.verified,
                observed_digest=result.observed_digest,
            )
            for artifact, result in zip(manifest.artifacts, results)
        ]

        logger.info(
            "Verified %d/%d artifacts (signature: %s)",
            sum(1 for a in report.artifacts if a.verified),
            len(report.artifacts),
            "not checked" if report.signature_ok is None else report.signature_ok,
        )
        return report

    def verify(
        self,
        root_dir: Path,
        manifest_path: Path | None = None,
        verify_signature: bool = False,
        public_key: str | bytes | None = None,
        signature_path: Path | None = None,
    ) -> VerificationReport:
        """Verify a manifest file under root_dir.

        Args:
            root_dir: Evidence root; artifact paths are relative to it
            manifest_path: Manifest file (default: root_dir/.provenance/manifest.json)
            verify_signature: Check the Ed25519 signature over canonical bytes
            public_key: Base64/hex text or raw 32 bytes
            signature_path: Signature file (default: <manifest>.sig)

        Raises:
            ParseError: Manifest unreadable or not strict JSON
            SecurityError: Manifest exceeds size/depth limits
            CryptoError: Malformed signature or key when verification requested
            OSError: Signature file unreadable when verification requested
        """
        if manifest_path is None:
            manifest_path = root_dir / DEFAULT_MANIFEST_PATH

        document = load_document(manifest_path, self.limits)

        sig_path = None
        if verify_signature:
            if public_key is None:
                raise ValueError("A public key is required to verify the manifest signature")
            sig_path = signature_path or signature_path_for(manifest_path)

        return self.verify_document(document, root_dir, public_key=public_key, signature_path=sig_path)


def verify_manifest(
    root_dir: Path,
    manifest_path: Path | None = None,
    public_key: str | bytes | None = None,
    signature_path: Path | None = None,
    schema_path: Path | None = None,
    max_workers: int = 1,
) -> VerificationReport:
    """One-call verification; the signature is checked when a public key is given."""
    if schema_path is not None:
        verifier = ManifestVerifier.from_schema_file(schema_path, max_workers=max_workers)
    else:
        verifier = ManifestVerifier(max_workers=max_workers)
    return verifier.verify(
        root_dir,
        manifest_path=manifest_path,
        verify_signature=public_key is not None,
        public_key=public_key,
        signature_path=signature_path,
    )
