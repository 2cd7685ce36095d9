"""Manifest integrity and provenance verification.

Loads the evidence manifest, validates it structurally and semantically,
checks its Ed25519 signature over canonical bytes, and re-hashes every
artifact it names.
"""

from __future__ import annotations

from provcore.provenance.content import ContentResult, sha256_file, verify_artifacts, verify_content
from provcore.provenance.manifest import (
    RENDER_KINDS,
    Artifact,
    FrontPage,
    Manifest,
    ManifestError,
    ParseError,
    WorkflowRun,
    load_document,
    refresh_digests,
)
from provcore.provenance.semantics import (
    SemanticErrorKind,
    SemanticValidationError,
    SemanticViolation,
    check_semantics,
    validate_semantics,
)
from provcore.provenance.signing import (
    BadKey,
    BadSignatureEncoding,
    CryptoError,
    SignatureMismatchError,
    Signer,
    SigningError,
    verify_signature,
)
from provcore.provenance.verifier import (
    ArtifactResult,
    ManifestVerifier,
    VerificationReport,
    verify_manifest,
)

__all__ = [
    "RENDER_KINDS",
    "Artifact",
    "ArtifactResult",
    "BadKey",
    "BadSignatureEncoding",
    "ContentResult",
    "CryptoError",
    "FrontPage",
    "Manifest",
    "ManifestError",
    "ManifestVerifier",
    "ParseError",
    "SemanticErrorKind",
    "SemanticValidationError",
    "SemanticViolation",
    "SignatureMismatchError",
    "Signer",
    "SigningError",
    "VerificationReport",
    "WorkflowRun",
    "check_semantics",
    "load_document",
    "refresh_digests",
    "sha256_file",
    "validate_semantics",
    "verify_artifacts",
    "verify_content",
    "verify_manifest",
    "verify_signature",
]
