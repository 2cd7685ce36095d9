"""Ed25519 signing and verification of canonical manifest bytes.

Signatures travel as base64 text in a sidecar file (``manifest.json.sig``).
Public keys are 32 raw bytes, supplied as base64 or hex text.

Environment variables (used by ``Signer`` when no key is passed in):
- PROVCORE_SIGNING_PRIVATE_KEY: Base64-encoded 32-byte private seed
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

logger = logging.getLogger(__name__)

PUBLIC_KEY_SIZE = 32
PRIVATE_KEY_SIZE = 32
SIGNATURE_SIZE = 64
SIGNATURE_SUFFIX = ".sig"


class CryptoError(Exception):
    """Malformed signature or key input. A wrong signature is not an error."""
    pass


class BadSignatureEncoding(CryptoError):
    """Signature text is not base64 of a 64-byte Ed25519 signature."""
    pass


class BadKey(CryptoError):
    """Public key is neither base64 nor hex of 32 raw bytes."""
    pass


class SigningError(Exception):
    """Error during signing operation."""
    pass


class SignatureMismatchError(Exception):
    """A requested signature check returned False."""
    pass


def _b64decode_strict(text: str) -> bytes:
    return base64.b64decode(text, validate=True)


def decode_signature(signature_encoded: str | bytes) -> bytes:
    """Decode base64 signature text (surrounding whitespace ignored).

    Raises:
        BadSignatureEncoding: If not base64 or not 64 bytes long
    """
    if isinstance(signature_encoded, bytes):
        try:
            signature_encoded = signature_encoded.decode("ascii")
        except UnicodeDecodeError as e:
            raise BadSignatureEncoding("Signature is not ASCII base64 text") from e

    try:
        raw = _b64decode_strict(signature_encoded.strip())
    except (binascii.Error, ValueError) as e:
        raise BadSignatureEncoding(f"Signature is not valid base64: {e}") from e

    if len(raw) != SIGNATURE_SIZE:
        raise BadSignatureEncoding(
            f"Signature must be {SIGNATURE_SIZE} bytes, got {len(raw)}"
        )
    return raw


def decode_public_key(public_key_encoded: str | bytes) -> bytes:
    """Decode a public key given as base64 text, hex text, or raw bytes.

    Base64 is tried first; hex is the fallback when base64 does not yield a
    32-byte key. A 64-character hex key is also legal base64 (of 48 bytes),
    so the length is part of the base64 branch's success condition.

    Raises:
        BadKey: If no branch yields exactly 32 bytes
    """
    if isinstance(public_key_encoded, bytes):
        if len(public_key_encoded) == PUBLIC_KEY_SIZE:
            return public_key_encoded
        try:
            public_key_encoded = public_key_encoded.decode("ascii")
        except UnicodeDecodeError as e:
            raise BadKey("Public key is neither raw 32 bytes nor ASCII text") from e

    text = public_key_encoded.strip()

    try:
        raw = _b64decode_strict(text)
    except (binascii.Error, ValueError):
        raw = None
    if raw is not None and len(raw) == PUBLIC_KEY_SIZE:
        return raw

    try:
        raw = bytes.fromhex(text)
    except ValueError:
        if raw is None:
            raise BadKey("Public key is neither base64 nor hex")
    if len(raw) != PUBLIC_KEY_SIZE:
        raise BadKey(f"Public key must be {PUBLIC_KEY_SIZE} bytes, got {len(raw)}")
    return raw


def verify_signature(
    canonical_bytes: bytes,
    signature_encoded: str | bytes,
    public_key_encoded: str | bytes,
) -> bool:
    """Check an Ed25519 signature over canonical manifest bytes.

    Returns:
        True if the signature matches, False if it is well-formed but does not

    Raises:
        BadSignatureEncoding: Malformed signature input
        BadKey: Malformed public key input
    """
    signature = decode_signature(signature_encoded)
    key_bytes = decode_public_key(public_key_encoded)

    try:
        verify_key = Ed25519PublicKey.from_public_bytes(key_bytes)
    except ValueError as e:
        raise BadKey(f"Invalid Ed25519 public key: {e}") from e

    try:
        verify_key.verify(signature, canonical_bytes)
    except InvalidSignature:
        logger.debug("Ed25519 signature did not verify")
        return False
    return True


def signature_path_for(manifest_path: Path) -> Path:
    """Conventional sidecar location: ``<manifest-filename>.sig``."""
    return manifest_path.parent / f"{manifest_path.name}{SIGNATURE_SUFFIX}"


def read_signature_file(path: Path) -> bytes:
    """Read base64 signature text, tolerating a trailing newline.

    Returned as bytes; ``decode_signature`` rejects anything non-ASCII.
    """
    with open(path, "rb") as f:
        return f.read().strip()


def encode_public_key(public_key: bytes) -> str:
    """Base64 text form of a raw public key."""
    return base64.b64encode(public_key).decode("ascii")


class Signer:
    """Signs canonical manifest bytes with an Ed25519 private seed."""

    ALG_ED25519 = "Ed25519"

    def __init__(self, private_key: bytes | None = None) -> None:
        """Initialize signer.

        Args:
            private_key: 32-byte private seed (optional)

        If no key is provided, attempts to load from environment variables.
        """
        self._private_key = private_key
        self._signing_key: Ed25519PrivateKey | None = None

        if self._private_key is None:
            self._load_key_from_env()

        if self._private_key is not None:
            if len(self._private_key) != PRIVATE_KEY_SIZE:
                raise SigningError(
                    f"Private key must be {PRIVATE_KEY_SIZE} bytes (seed), got {len(self._private_key)}"
                )
            self._signing_key = Ed25519PrivateKey.from_private_bytes(self._private_key)

    def _load_key_from_env(self) -> None:
        """Load private key from environment variables."""
        priv_b64 = os.environ.get("PROVCORE_SIGNING_PRIVATE_KEY")
        if priv_b64:
            try:
                self._private_key = _b64decode_strict(priv_b64.strip())
            except (binascii.Error, ValueError) as e:
                raise SigningError("Invalid base64 in PROVCORE_SIGNING_PRIVATE_KEY") from e

    @classmethod
    def from_file(cls, path: Path) -> Signer:
        """Load a raw 32-byte seed file."""
        with open(path, "rb") as f:
            return cls(private_key=f.read())

    def is_configured(self) -> bool:
        """Check if signer has a key configured."""
        return self._signing_key is not None

    @property
    def public_key(self) -> bytes:
        """Raw 32-byte public key matching the private seed."""
        if self._signing_key is None:
            raise SigningError("No private key configured")
        return self._signing_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    def sign(self, canonical_bytes: bytes) -> bytes:
        """Return the raw 64-byte signature over canonical bytes.

        Raises:
            SigningError: If not configured
        """
        if self._signing_key is None:
            raise SigningError("No private key configured")
        return self._signing_key.sign(canonical_bytes)

    def sign_b64(self, canonical_bytes: bytes) -> str:
        """Return the base64 text form of the signature."""
        return base64.b64encode(self.sign(canonical_bytes)).decode("ascii")

    def write_signature(self, canonical_bytes: bytes, output_path: Path) -> Path:
        """Sign and write the base64 signature with a trailing newline."""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="ascii") as f:
            f.write(self.sign_b64(canonical_bytes))
            f.write("\n")
        logger.info("Wrote signature to %s", output_path)
        return output_path

    @classmethod
    def generate_keys(cls) -> tuple[bytes, bytes]:
        """Generate a new key pair.

        Returns:
            Tuple of (private_seed, public_key) as raw bytes
        """
        private_key = Ed25519PrivateKey.generate()
        private_bytes = private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return (private_bytes, public_bytes)
