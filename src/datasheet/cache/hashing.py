"""
Content hashing for cache keys.

Uploads are keyed by the SHA-256 digest of the file bytes, so the same PDF
maps to the same cache entry regardless of its path or name.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from datasheet.exceptions import CacheIOError


def compute_hash(data: bytes) -> str:
    """Compute the SHA-256 hex digest (64 chars) of data."""
    return hashlib.sha256(data).hexdigest()


def hash_file(path: Path | str) -> tuple[str, bytes]:
    """Read a file and hash its contents.

    Args:
        path: File to read.

    Returns:
        Tuple of (hex digest, file bytes).

    Raises:
        CacheIOError: If the file cannot be read.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise CacheIOError(
            f"Failed to read {path}",
            context={"operation": "reading source file", "path": str(path), "error": str(e)},
        ) from e
    return compute_hash(data), data
