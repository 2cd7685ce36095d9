"""Per-artifact content verification by streamed SHA-256."""

from __future__ import annotations

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from provcore.provenance.manifest import Artifact
from provcore.security import SecurityError, check_path_safety

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class ContentResult:
    """Outcome of hashing one artifact file."""

    verified: bool
    observed_digest: str | None = None


def sha256_file(path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Compute the lowercase hex SHA-256 of a file without buffering it whole."""
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
    return hasher.hexdigest()


def verify_content(
    artifact: Artifact,
    root_dir: Path,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> ContentResult:
    """Hash the artifact's file and compare against its claimed digest.

    The comparison is exact: claims are defined as lowercase hex, so an
    uppercase claim never verifies. Missing or unreadable files give an
    unverified result instead of an exception.
    """
    try:
        file_path = check_path_safety(root_dir / artifact.path, root_dir)
        observed = sha256_file(file_path, chunk_size)
    except (OSError, ValueError, SecurityError) as e:
        logger.warning("Cannot read artifact %s (%s): %s", artifact.id, artifact.path, e)
        return ContentResult(verified=False, observed_digest=None)

    verified = observed == artifact.sha256
    if not verified:
        logger.warning(
            "Digest mismatch for %s: expected %s, got %s",
            artifact.id, artifact.sha256, observed,
        )
    return ContentResult(verified=verified, observed_digest=observed)


def verify_artifacts(
    artifacts: Sequence[Artifact],
    root_dir: Path,
    max_workers: int = 1,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> list[ContentResult]:
    """Verify every artifact, optionally across a thread pool.

    Results are keyed by position and returned in manifest order whatever
    order the checks finish in.
    """
    if max_workers <= 1 or len(artifacts) <= 1:
        return [verify_content(a, root_dir, chunk_size) for a in artifacts]

    results: dict[int, ContentResult] = {}
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {
            pool.submit(verify_content, artifact, root_dir, chunk_size): index
            for index, artifact in enumerate(artifacts)
        }
        for future, index in futures.items():
            results[index] = future.result()
    return [results[i] for i in range(len(artifacts))]
