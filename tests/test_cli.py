"""Tests for the provctl command line."""

from __future__ import annotations

import base64
import hashlib
import json
from pathlib import Path

from click.testing import CliRunner

from conftest import TEST_SUMMARY, EvidenceRepo
from provcore.canonical import canonicalize
from provcore.cli import cli
from provcore.provenance.signing import Signer, verify_signature


class TestVerifyCommand:
    """Test `provctl verify`."""

    def test_verify_signed_bundle(self, signed_repo: EvidenceRepo):
        """A good bundle exits 0 and reports a valid signature."""
        result = CliRunner().invoke(cli, [
            "verify", "--root", str(signed_repo.root), "--public-key", signed_repo.public_key_b64,
        ])
        assert result.exit_code == 0, result.output
        assert "PUBLISHABLE" in result.output
        assert "Signature: ✅ VALID" in result.output
        assert "Artifacts verified: 1/1" in result.output

    def test_public_key_file(self, signed_repo: EvidenceRepo, tmp_path: Path):
        """--public-key may name a key file."""
        key_file = tmp_path / "public.key"
        key_file.write_text(signed_repo.public_key_b64 + "\n")
        result = CliRunner().invoke(cli, [
            "verify", "--root", str(signed_repo.root), "--public-key", str(key_file),
        ])
        assert result.exit_code == 0, result.output

    def test_tampered_manifest_fails(self, signed_repo: EvidenceRepo):
        """A bad signature exits non-zero."""
        document = signed_repo.document()
        document["repo"] = "evil/provenance"
        signed_repo.write_manifest(document)
        result = CliRunner().invoke(cli, [
            "verify", "--root", str(signed_repo.root), "--public-key", signed_repo.public_key_b64,
        ])
        assert result.exit_code == 1
        assert "REJECTED" in result.output
        assert "INVALID" in result.output

    def test_unverified_artifact_is_warning(self, signed_repo: EvidenceRepo):
        """Digest mismatches warn but still exit 0 unless --strict-content."""
        (signed_repo.root / "ci/tests/summary.json").write_bytes(b"{}")
        args = ["verify", "--root", str(signed_repo.root)]

        result = CliRunner().invoke(cli, args)
        assert result.exit_code == 0, result.output
        assert "unverified: tests-summary" in result.output

        result = CliRunner().invoke(cli, args + ["--strict-content"])
        assert result.exit_code == 1

    def test_schema_failure(self, signed_repo: EvidenceRepo):
        """Schema violations are listed and the exit code is 1."""
        document = signed_repo.document()
        document["version"] = "one"
        signed_repo.write_manifest(document)
        result = CliRunner().invoke(cli, ["verify", "--root", str(signed_repo.root)])
        assert result.exit_code == 1
        assert "Schema: FAILED" in result.output
        assert "<root>.version" in result.output

    def test_signature_required_without_key(self, signed_repo: EvidenceRepo):
        """--verify-signature without a key is a configuration error."""
        result = CliRunner().invoke(cli, ["verify", "--root", str(signed_repo.root), "--verify-signature"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_writes_reports(self, signed_repo: EvidenceRepo, tmp_path: Path):
        """--out writes JSON and Markdown reports."""
        out = tmp_path / "reports"
        result = CliRunner().invoke(cli, [
            "verify", "--root", str(signed_repo.root), "--out", str(out), "--workers", "2",
        ])
        assert result.exit_code == 0, result.output
        report = json.loads((out / "verification_report.json").read_text())
        assert report["allArtifactsVerified"] is True
        assert report["signatureOk"] is None
        assert (out / "verification_report.md").exists()

    def test_config_file(self, signed_repo: EvidenceRepo, tmp_path: Path):
        """Settings can come from a YAML file."""
        config_file = tmp_path / "provcore.yaml"
        config_file.write_text(
            f"root: '{signed_repo.root}'\n"
            f"public_key: '{signed_repo.public_key_b64}'\n"
            "verify_signature: true\n"
        )
        result = CliRunner().invoke(cli, ["--config", str(config_file), "verify"])
        assert result.exit_code == 0, result.output
        assert "Signature: ✅ VALID" in result.output


class TestCanonicalizeCommand:
    """Test `provctl canonicalize`."""

    def test_prints_canonical_bytes(self, signed_repo: EvidenceRepo):
        """Output is the compact, sorted form."""
        result = CliRunner().invoke(cli, ["canonicalize", str(signed_repo.manifest_path)])
        assert result.exit_code == 0, result.output
        assert result.output.rstrip("\n") == canonicalize(signed_repo.document()).decode("utf-8")

    def test_writes_file(self, signed_repo: EvidenceRepo, tmp_path: Path):
        """--out writes the exact bytes that get signed."""
        out = tmp_path / "canonical.json"
        result = CliRunner().invoke(cli, ["canonicalize", str(signed_repo.manifest_path), "--out", str(out)])
        assert result.exit_code == 0, result.output
        assert out.read_bytes() == canonicalize(signed_repo.document())

    def test_duplicate_keys(self, tmp_path: Path):
        """Ambiguous manifests are refused."""
        manifest = tmp_path / "manifest.json"
        manifest.write_text('{"a": 1, "a": 2}')
        result = CliRunner().invoke(cli, ["canonicalize", str(manifest)])
        assert result.exit_code == 1
        assert "Duplicate" in result.output


class TestUpdateShaCommand:
    """Test `provctl update-sha`."""

    def test_updates_in_place(self, evidence_repo: EvidenceRepo):
        """Stale digests are rewritten into the manifest."""
        evidence_repo.add_artifact("tests-summary", "ci/tests/summary.json", TEST_SUMMARY, sha256="0" * 64)
        evidence_repo.write_manifest()

        result = CliRunner().invoke(cli, ["update-sha", "--root", str(evidence_repo.root)])
        assert result.exit_code == 0, result.output
        assert "1 digests changed" in result.output

        document = json.loads(evidence_repo.manifest_path.read_text())
        assert document["artifacts"][0]["sha256"] == hashlib.sha256(TEST_SUMMARY).hexdigest()

    def test_missing_artifact(self, evidence_repo: EvidenceRepo):
        """A missing artifact file is an error."""
        evidence_repo.add_artifact("a", "a.json", b"{}")
        evidence_repo.write_manifest()
        (evidence_repo.root / "a.json").unlink()
        result = CliRunner().invoke(cli, ["update-sha", "--root", str(evidence_repo.root)])
        assert result.exit_code == 1


class TestKeyCommands:
    """Test `provctl gen-keys` and `provctl sign`."""

    def test_gen_keys_sign_verify(self, evidence_repo: EvidenceRepo, tmp_path: Path):
        """Generated keys sign a manifest that then verifies."""
        evidence_repo.add_artifact("tests-summary", "ci/tests/summary.json", TEST_SUMMARY, render="summary:test")
        evidence_repo.write_manifest()
        private_key = tmp_path / "keys" / "ed25519.key"
        public_key = tmp_path / "keys" / "public.key"
        runner = CliRunner()

        result = runner.invoke(cli, [
            "gen-keys", "--private-key-out", str(private_key), "--public-key-out", str(public_key),
        ])
        assert result.exit_code == 0, result.output
        assert len(private_key.read_bytes()) == 32
        assert len(base64.b64decode(public_key.read_text().strip())) == 32

        result = runner.invoke(cli, [
            "sign", "--manifest", str(evidence_repo.manifest_path), "--private-key", str(private_key),
        ])
        assert result.exit_code == 0, result.output
        signature = evidence_repo.signature_path.read_text()
        assert verify_signature(canonicalize(evidence_repo.document()), signature, public_key.read_text())

        result = runner.invoke(cli, [
            "verify", "--root", str(evidence_repo.root), "--public-key", str(public_key),
        ])
        assert result.exit_code == 0, result.output
        assert "Signature: ✅ VALID" in result.output

    def test_sign_writes_public_key(self, signed_repo: EvidenceRepo, tmp_path: Path):
        """--pubkey-out exports the matching public key."""
        seed, public = Signer.generate_keys()
        private_key = tmp_path / "seed.key"
        private_key.write_bytes(seed)
        pubkey_out = tmp_path / "pub.b64"
        result = CliRunner().invoke(cli, [
            "sign", "--manifest", str(signed_repo.manifest_path),
            "--private-key", str(private_key), "--pubkey-out", str(pubkey_out),
        ])
        assert result.exit_code == 0, result.output
        assert pubkey_out.read_text().strip() == base64.b64encode(public).decode("ascii")

    def test_sign_bad_seed(self, signed_repo: EvidenceRepo, tmp_path: Path):
        """A seed file of the wrong size fails cleanly."""
        private_key = tmp_path / "short.key"
        private_key.write_bytes(b"\x01" * 16)
        result = CliRunner().invoke(cli, [
            "sign", "--manifest", str(signed_repo.manifest_path), "--private-key", str(private_key),
        ])
        assert result.exit_code == 1
        assert "32 bytes" in result.output
