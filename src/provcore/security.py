"""Security hardening for untrusted manifest input.

Provides limits and checks to prevent:
- Path traversal out of the evidence root
- Resource exhaustion (oversized or deeply nested JSON)
- Ambiguous documents (duplicate object keys, non-JSON constants)
"""

from __future__ import annotations

import json
import math
from pathlib import Path, PurePath
from typing import Any

# Default security limits
DEFAULT_MAX_JSON_DEPTH = 64
DEFAULT_MAX_JSON_SIZE = 16 * 1024 * 1024  # 16 MB


class SecurityLimits:
    """Configurable security limits."""

    def __init__(
        self,
        max_json_depth: int = DEFAULT_MAX_JSON_DEPTH,
        max_json_size: int = DEFAULT_MAX_JSON_SIZE,
    ) -> None:
        self.max_json_depth = max_json_depth
        self.max_json_size = max_json_size

    def __repr__(self) -> str:
        return f"SecurityLimits(max_json_depth={self.max_json_depth}, max_json_size={self.max_json_size})"


class SecurityError(Exception):
    """Security violation detected."""
    pass


def has_traversal_segment(path: str) -> bool:
    """Return True if a relative path string contains a '..' segment.

    Both '/' and '\\' count as separators so Windows-style paths cannot
    smuggle a parent reference past the check.
    """
    segments = path.replace("\\", "/").split("/")
    return ".." in segments


def is_absolute_reference(path: str) -> bool:
    """Return True for paths that are absolute on any platform we care about."""
    if path.startswith("/") or path.startswith("\\"):
        return True
    return PurePath(path).is_absolute()


def _resolve(path: Path) -> Path:
    """Resolve symlinks, turning every resolution failure into SecurityError.

    NUL bytes raise ValueError and symlink loops raise RuntimeError on
    older interpreters; neither may escape as an unexpected exception.
    """
    try:
        return path.resolve()
    except (OSError, ValueError, RuntimeError) as e:
        raise SecurityError(f"Cannot resolve path {path!r}: {e}") from e


def is_within(path: Path, base_dir: Path) -> bool:
    """Check that path, after resolving symlinks, stays under base_dir.

    A path that cannot be resolved is never considered inside.
    """
    try:
        resolved = _resolve(path)
        base_resolved = _resolve(base_dir)
    except SecurityError:
        return False
    try:
        resolved.relative_to(base_resolved)
    except ValueError:
        return False
    return True


def check_path_safety(path: Path, base_dir: Path | None = None) -> Path:
    """Verify path is safe (no traversal outside base_dir).

    Args:
        path: Path to check
        base_dir: Allowed base directory (if None, no restriction)

    Returns:
        Resolved path

    Raises:
        SecurityError: If path traversal detected or the path cannot be resolved
    """
    resolved = _resolve(path)

    if base_dir is not None and not is_within(path, base_dir):
        raise SecurityError(
            f"Path traversal detected: {path} is outside {base_dir}"
        )

    return resolved


def check_json_depth(obj: Any, current_depth: int = 0, max_depth: int = DEFAULT_MAX_JSON_DEPTH) -> int:
    """Check JSON object depth.

    Returns:
        Actual depth of object

    Raises:
        SecurityError: If depth exceeds max_depth
    """
    if current_depth > max_depth:
        raise SecurityError(f"JSON depth exceeds maximum: {max_depth}")

    if isinstance(obj, dict):
        max_child_depth = current_depth
        for value in obj.values():
            child_depth = check_json_depth(value, current_depth + 1, max_depth)
            max_child_depth = max(max_child_depth, child_depth)
        return max_child_depth
    elif isinstance(obj, list):
        max_child_depth = current_depth
        for item in obj:
            child_depth = check_json_depth(item, current_depth + 1, max_depth)
            max_child_depth = max(max_child_depth, child_depth)
        return max_child_depth
    else:
        return current_depth


def _reject_duplicate_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise ValueError(f"Duplicate object key: {key!r}")
        result[key] = value
    return result


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant not allowed: {name}")


def _parse_finite_float(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"Number out of range for a finite float: {text}")
    return value


def strict_json_loads(text: str) -> Any:
    """Parse JSON text, rejecting duplicate keys, NaN/Infinity tokens and
    numbers such as 1e400 that overflow to infinity.

    Raises:
        ValueError: On malformed JSON (json.JSONDecodeError is a ValueError)
    """
    return json.loads(
        text,
        object_pairs_hook=_reject_duplicate_keys,
        parse_constant=_reject_constant,
        parse_float=_parse_finite_float,
    )


def safe_load_json(
    data: bytes | str,
    limits: SecurityLimits | None = None,
) -> Any:
    """Safely load JSON with depth and size limits.

    Only the size and depth limits raise SecurityError; malformed text
    propagates as ValueError so callers can tell the two apart.

    Args:
        data: JSON data as bytes or string
        limits: Security limits

    Returns:
        Parsed JSON object

    Raises:
        SecurityError: If limits exceeded
        ValueError: If the text is not strict JSON
    """
    if limits is None:
        limits = SecurityLimits()

    if isinstance(data, bytes):
        if len(data) > limits.max_json_size:
            raise SecurityError(
                f"JSON data too large: {len(data)} bytes > {limits.max_json_size}"
            )
        text = data.decode("utf-8")
    else:
        if len(data.encode("utf-8", "surrogatepass")) > limits.max_json_size:
            raise SecurityError(
                f"JSON data too large: {len(data)} chars exceeds size limit"
            )
        text = data

    try:
        obj = strict_json_loads(text)
    except RecursionError as e:
        raise SecurityError(
            f"JSON depth exceeds maximum: {limits.max_json_depth}"
        ) from e

    check_json_depth(obj, max_depth=limits.max_json_depth)

    return obj
