"""Provenance Core CLI."""

from __future__ import annotations

import logging
import sys
import traceback
from pathlib import Path

import click

from provcore import __version__
from provcore.canonical import canonicalize
from provcore.config import VerifierConfig
from provcore.provenance.manifest import DEFAULT_MANIFEST_PATH, load_document, refresh_digests, write_document
from provcore.provenance.signing import Signer, encode_public_key, signature_path_for
from provcore.provenance.verifier import ManifestVerifier


def handle_error(error: Exception, debug: bool) -> None:
    """Handle errors with structured output.

    Args:
        error: The exception that occurred
        debug: Whether to show full traceback
    """
    if debug:
        traceback.print_exc()
    else:
        click.echo(f"Error: {error}", err=True)
        for detail in getattr(error, "errors", []):
            click.echo(f"  - {detail}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="provctl")
@click.option('--config', '-c', 'config_path', type=click.Path(exists=True, path_type=Path),
              help='YAML configuration file')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              default='WARNING', show_default=True, help='Logging level')
@click.option('--debug', is_flag=True, help='Enable debug mode (show full tracebacks)')
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str, debug: bool):
    """Provenance Core CLI - verify signed evidence manifests."""
    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config_path
    ctx.obj['debug'] = debug


@cli.command()
@click.option('--root', '-r', type=click.Path(exists=True, file_okay=False, path_type=Path),
              help='Evidence root; artifact paths are relative to it')
@click.option('--manifest', '-m', type=click.Path(path_type=Path),
              help=f'Manifest path relative to root (default: {DEFAULT_MANIFEST_PATH})')
@click.option('--schema', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='JSON Schema overriding the bundled manifest schema')
@click.option('--signature', type=click.Path(path_type=Path),
              help='Signature file (default: <manifest>.sig)')
@click.option('--public-key', '-k', help='Public key (base64/hex) or a file containing it')
@click.option('--verify-signature/--no-verify-signature', default=None,
              help='Check the Ed25519 signature over canonical manifest bytes')
@click.option('--workers', '-w', type=int, help='Parallel workers for content verification')
@click.option('--out', '-o', type=click.Path(path_type=Path), help='Output directory for verification reports')
@click.option('--strict-content', is_flag=True, help='Exit non-zero when any artifact is unverified')
@click.pass_context
def verify(
    ctx: click.Context,
    root: Path | None,
    manifest: Path | None,
    schema: Path | None,
    signature: Path | None,
    public_key: str | None,
    verify_signature: bool | None,
    workers: int | None,
    out: Path | None,
    strict_content: bool,
):
    """Verify a manifest: schema, semantics, signature and artifact digests.

    Examples:
      provctl verify --root .
      provctl verify --root . --verify-signature --public-key .provenance/public.key
      provctl verify --root . --out ./verification-report
    """
    debug = ctx.obj.get('debug', False)

    try:
        config = VerifierConfig.load(ctx.obj.get('config_path'))
        if public_key is not None and verify_signature is None:
            verify_signature = True
        config = config.with_overrides(
            root=root,
            manifest=manifest,
            schema_path=schema,
            signature_path=signature,
            public_key=public_key,
            verify_signature=verify_signature,
            max_workers=workers,
        )
        config.check_ready()

        verifier_kwargs = dict(limits=config.limits, max_workers=config.max_workers, chunk_size=config.chunk_size)
        if config.schema_path is not None:
            verifier = ManifestVerifier.from_schema_file(config.schema_path, **verifier_kwargs)
        else:
            verifier = ManifestVerifier(**verifier_kwargs)

        click.echo(f"Verifying manifest: {config.manifest_path}...")
        report = verifier.verify(
            config.root,
            manifest_path=config.manifest_path,
            verify_signature=config.verify_signature,
            public_key=config.resolve_public_key(),
            signature_path=config.signature_path,
        )

        if out:
            report.write_json(out / "verification_report.json")
            report.write_markdown(out / "verification_report.md")
            click.echo("\nVerification reports written to:")
            click.echo(f"  - JSON: {out / 'verification_report.json'}")
            click.echo(f"  - MD:   {out / 'verification_report.md'}")

        click.echo(f"\nVerification Result: {'✅ PUBLISHABLE' if report.publishable else '❌ REJECTED'}")
        click.echo(f"  Schema: {'ok' if report.schema_ok else 'FAILED'}")
        for violation in report.schema_violations:
            click.echo(f"    - {violation}")
        if report.schema_ok:
            click.echo(f"  Semantics: {'ok' if report.semantic_ok else 'FAILED'}")
            for violation in report.semantic_violations:
                click.echo(f"    - {violation}")
        if report.signature_ok is not None:
            click.echo(f"  Signature: {'✅ VALID' if report.signature_ok else '❌ INVALID'}")

        if report.artifacts:
            verified = sum(1 for a in report.artifacts if a.verified)
            click.echo(f"  Artifacts verified: {verified}/{len(report.artifacts)}")
            for result in report.artifacts:
                if not result.verified:
                    click.echo(f"    ⚠️  unverified: {result.id}")

        if not report.publishable:
            sys.exit(1)
        if strict_content and not report.all_artifacts_verified:
            sys.exit(1)
    except Exception as e:
        handle_error(e, debug)


@cli.command(name="canonicalize")
@click.argument('manifest', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--out', '-o', type=click.Path(path_type=Path), help='Write canonical bytes here instead of stdout')
@click.pass_context
def canonicalize_cmd(ctx: click.Context, manifest: Path, out: Path | None):
    """Print the canonical bytes of a manifest (what gets signed)."""
    debug = ctx.obj.get('debug', False)

    try:
        canonical = canonicalize(load_document(manifest))
        if out:
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_bytes(canonical)
            click.echo(f"Wrote {len(canonical)} canonical bytes to {out}")
        else:
            click.echo(canonical.decode("utf-8"))
    except Exception as e:
        handle_error(e, debug)


@cli.command(name="update-sha")
@click.option('--root', '-r', default='.', type=click.Path(exists=True, file_okay=False, path_type=Path),
              help='Evidence root; artifact paths are relative to it')
@click.option('--manifest', '-m', default=str(DEFAULT_MANIFEST_PATH), type=click.Path(path_type=Path),
              help='Manifest path relative to root')
@click.option('--out', '-o', type=click.Path(path_type=Path), help='Output manifest (default: overwrite --manifest)')
@click.pass_context
def update_sha(ctx: click.Context, root: Path, manifest: Path, out: Path | None):
    """Recompute artifact sha256 values and write a new manifest."""
    debug = ctx.obj.get('debug', False)

    try:
        manifest_path = manifest if manifest.is_absolute() else root / manifest
        document = load_document(manifest_path)
        updated, changes = refresh_digests(document, root)
        for entry in updated["artifacts"]:
            click.echo(f"{entry.get('id')} => {entry['sha256']}")
        target = out or manifest_path
        write_document(updated, target)
        click.echo(f"\n{len(changes)} digests changed; wrote {target}")
    except Exception as e:
        handle_error(e, debug)


@cli.command()
@click.option('--manifest', '-m', default=str(DEFAULT_MANIFEST_PATH), type=click.Path(exists=True, path_type=Path),
              help='Manifest to sign')
@click.option('--private-key', required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='Raw 32-byte Ed25519 seed file')
@click.option('--sig-out', type=click.Path(path_type=Path), help='Signature output (default: <manifest>.sig)')
@click.option('--pubkey-out', type=click.Path(path_type=Path), help='Also write the base64 public key here')
@click.pass_context
def sign(ctx: click.Context, manifest: Path, private_key: Path, sig_out: Path | None, pubkey_out: Path | None):
    """Canonicalize and sign a manifest (Ed25519, base64 signature file)."""
    debug = ctx.obj.get('debug', False)

    try:
        signer = Signer.from_file(private_key)
        canonical = canonicalize(load_document(manifest))
        sig_path = signer.write_signature(canonical, sig_out or signature_path_for(manifest))
        click.echo(f"Wrote signature to {sig_path}")

        if pubkey_out:
            pubkey_out.parent.mkdir(parents=True, exist_ok=True)
            pubkey_out.write_text(encode_public_key(signer.public_key) + "\n", encoding="ascii")
            click.echo(f"Wrote public key to {pubkey_out}")
    except Exception as e:
        handle_error(e, debug)


@cli.command(name="gen-keys")
@click.option('--private-key-out', required=True, type=click.Path(path_type=Path),
              help='Output path for the raw 32-byte private seed')
@click.option('--public-key-out', required=True, type=click.Path(path_type=Path),
              help='Output path for the base64 public key')
@click.pass_context
def gen_keys(ctx: click.Context, private_key_out: Path, public_key_out: Path):
    """Generate a test Ed25519 key pair.

    The private seed is written raw; keep it out of the repository.
    """
    debug = ctx.obj.get('debug', False)

    try:
        private_key, public_key = Signer.generate_keys()
        private_key_out.parent.mkdir(parents=True, exist_ok=True)
        private_key_out.write_bytes(private_key)
        private_key_out.chmod(0o600)
        public_key_out.parent.mkdir(parents=True, exist_ok=True)
        public_key_out.write_text(encode_public_key(public_key) + "\n", encoding="ascii")
        click.echo(f"Wrote priv={private_key_out} ({len(private_key)} bytes) and pub={public_key_out} (base64)")
    except Exception as e:
        handle_error(e, debug)


def main() -> None:
    """Entry point."""
    cli()


if __name__ == '__main__':
    main()
