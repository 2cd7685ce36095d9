"""Shared fixtures: a typed builder for evidence repositories on disk."""

from __future__ import annotations

import base64
import hashlib
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from provcore.canonical import canonicalize
from provcore.provenance.signing import Signer


@dataclass
class EvidenceRepo:
    """A repository root holding artifact files and a manifest."""

    root: Path
    signer: Signer
    artifacts: list[dict[str, Any]] = field(default_factory=list)
    repo: str = "acme/provenance"
    commit: str = "0123456789abcdef"

    @property
    def manifest_path(self) -> Path:
        return self.root / ".provenance" / "manifest.json"

    @property
    def signature_path(self) -> Path:
        return self.root / ".provenance" / "manifest.json.sig"

    @property
    def public_key(self) -> bytes:
        return self.signer.public_key

    @property
    def public_key_b64(self) -> str:
        return base64.b64encode(self.public_key).decode("ascii")

    def add_artifact(
        self,
        artifact_id: str,
        path: str,
        content: bytes,
        render: str = "json",
        media_type: str = "application/json",
        sha256: str | None = None,
    ) -> dict[str, Any]:
        """Write the artifact file and record its manifest entry."""
        file_path = self.root / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(content)
        entry = {
            "id": artifact_id,
            "title": artifact_id.replace("-", " ").title(),
            "path": path,
            "media_type": media_type,
            "render": render,
            "sha256": sha256 or hashlib.sha256(content).hexdigest(),
        }
        self.artifacts.append(entry)
        return entry

    def document(self) -> dict[str, Any]:
        """Manifest document for the recorded artifacts."""
        return {
            "version": 1,
            "repo": self.repo,
            "commit": self.commit,
            "workflow_run": {"id": 42, "url": "https://ci.example.com/run/42", "attempt": 1},
            "front_page": {"title": "QA Evidence", "markup": "ci/front_page.pml"},
            "artifacts": [dict(a) for a in self.artifacts],
        }

    def write_manifest(self, document: dict[str, Any] | None = None) -> Path:
        """Write the manifest as pretty JSON, the way CI tooling does."""
        self.manifest_path.parent.mkdir(parents=True, exist_ok=True)
        self.manifest_path.write_text(
            json.dumps(document if document is not None else self.document(), indent=2) + "\n",
            encoding="utf-8",
        )
        return self.manifest_path

    def sign(self, document: dict[str, Any] | None = None) -> Path:
        """Sign the canonical bytes of a document into the sidecar file."""
        canonical = canonicalize(document if document is not None else self.document())
        return self.signer.write_signature(canonical, self.signature_path)


TEST_SUMMARY = json.dumps(
    {"total": 3, "passed": 3, "failed": 0, "duration_seconds": 1.25},
    indent=2,
).encode("utf-8")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Keep a developer's PROVCORE_* settings out of the tests."""
    for name in list(os.environ):
        if name.startswith("PROVCORE_"):
            monkeypatch.delenv(name)


@pytest.fixture
def signer() -> Signer:
    private_key, _ = Signer.generate_keys()
    return Signer(private_key=private_key)


@pytest.fixture
def evidence_repo(tmp_path: Path, signer: Signer) -> EvidenceRepo:
    root = tmp_path / "repo"
    root.mkdir()
    return EvidenceRepo(root=root, signer=signer)


@pytest.fixture
def signed_repo(evidence_repo: EvidenceRepo) -> EvidenceRepo:
    """One correctly hashed and signed test-summary artifact."""
    evidence_repo.add_artifact(
        "tests-summary",
        "ci/tests/summary.json",
        TEST_SUMMARY,
        render="summary:test",
    )
    evidence_repo.write_manifest()
    evidence_repo.sign()
    return evidence_repo
