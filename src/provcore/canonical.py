"""Canonical JSON serialization and stable hashing.

The canonical bytes of a manifest are what gets signed and verified, so the
encoding here must be unique per logical document and stable across machines.

Design decisions:
- JSON: sorted keys at every level, no whitespace, non-ASCII kept literal
  (only '"', '\\' and control characters are escaped)
- Arrays: preserved order (artifact order is rendering order)
- Floats: finite values only; NaN/Inf are not JSON and raise errors
- Output: UTF-8 bytes
"""

from __future__ import annotations

import hashlib
import json
import math
import re
from typing import Any


class CanonicalJSONEncoder(json.JSONEncoder):
    """JSON encoder that produces canonical, deterministic output.

    Guarantees:
    - Sorted keys at all levels (code point order, identical to UTF-8 byte order)
    - No whitespace
    - Literal UTF-8 for non-ASCII characters
    - Rejects NaN/Inf instead of emitting non-standard tokens
    """

    def __init__(self, **kwargs: Any) -> None:
        kwargs["sort_keys"] = True
        kwargs["separators"] = (",", ":")
        kwargs["ensure_ascii"] = False
        kwargs["allow_nan"] = False
        super().__init__(**kwargs)

    def encode(self, o: Any) -> str:
        """Encode with canonical formatting."""
        return super().encode(self._normalize(o))

    def _normalize(self, obj: Any) -> Any:
        """Recursively check values and rebuild containers in canonical form."""
        if obj is None or isinstance(obj, (bool, int, str)):
            return obj
        if isinstance(obj, float):
            if math.isnan(obj) or math.isinf(obj):
                raise ValueError(f"Cannot canonicalize non-finite float: {obj}")
            return obj
        if isinstance(obj, dict):
            for key in obj:
                if not isinstance(key, str):
                    raise TypeError(f"Object keys must be strings, got {type(key).__name__}")
            return {k: self._normalize(v) for k, v in sorted(obj.items())}
        if isinstance(obj, (list, tuple)):
            return [self._normalize(item) for item in obj]
        raise TypeError(f"Value of type {type(obj).__name__} is not JSON")


# Singleton encoder instance
_encoder = CanonicalJSONEncoder()

_LONE_SURROGATE = re.compile(r"[\ud800-\udfff]")


def canonical_json(data: Any) -> str:
    """Produce canonical JSON text from parsed JSON data.

    Lone surrogates (legal ``\\ud800``-style escapes in JSON text) cannot be
    written as UTF-8, so they stay escaped; parsing the output gives back the
    same string.

    Args:
        data: A parsed JSON value (dict, list, str, int, float, bool, None)

    Returns:
        Canonical JSON string with sorted keys and no whitespace

    Raises:
        ValueError: If data contains NaN or Infinity floats
        TypeError: If data contains values that are not JSON
    """
    text = _encoder.encode(data)
    return _LONE_SURROGATE.sub(lambda m: f"\\u{ord(m.group()):04x}", text)


def canonicalize(data: Any) -> bytes:
    """Return the canonical UTF-8 bytes of a parsed JSON value."""
    return canonical_json(data).encode("utf-8")


def canonical_hash(data: Any, algorithm: str = "sha256") -> str:
    """Compute a deterministic hex digest of data via its canonical bytes.

    Args:
        data: Parsed JSON value
        algorithm: Hash algorithm (sha256, sha3_256, blake2b)

    Returns:
        Hex digest string
    """
    if algorithm == "sha256":
        hasher = hashlib.sha256()
    elif algorithm == "sha3_256":
        hasher = hashlib.sha3_256()
    elif algorithm == "blake2b":
        hasher = hashlib.blake2b(digest_size=32)
    else:
        raise ValueError(f"Unsupported algorithm: {algorithm}")

    hasher.update(canonicalize(data))
    return hasher.hexdigest()
