"""
CacheStore: JSON-document storage for uploaded file records.

The document maps content hashes to remote file records:

    {"files": {"<sha256 hex>": {"name": ..., "uri": ...,
                                "expires_at": ..., "file_size": ...}}}

A missing or corrupt document is never fatal; it loads as an empty store.
Writes overwrite the whole document and are not coordinated between
processes, so the last writer wins.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any

import orjson

from datasheet.exceptions import CacheIOError, CacheSerializationError
from datasheet.logging import get_logger
from datasheet.types import EXPIRY_MARGIN_SECONDS, CacheRecord

logger = get_logger(__name__)


def is_expired(record: CacheRecord, now: float, margin: int = EXPIRY_MARGIN_SECONDS) -> bool:
    """Expiry predicate: ``now + margin >= expires_at``."""
    return record.is_expired(now=now, margin=margin)


def _parse_document(raw: bytes) -> dict[str, CacheRecord]:
    try:
        doc: Any = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise CacheSerializationError("Cache document is not valid JSON", context={"error": str(e)}) from e

    if not isinstance(doc, dict):
        raise CacheSerializationError("Cache document is not an object")

    files = doc.get("files", {})
    if not isinstance(files, dict):
        raise CacheSerializationError("Cache document 'files' is not an object")

    return {
        content_hash: CacheRecord.from_dict(content_hash, entry)
        for content_hash, entry in files.items()
    }


class CacheStore:
    """Hash-to-record mapping backed by one JSON document.

    The store owns its document for the duration of one coordinator call:
    load, modify, save.
    """

    def __init__(self, path: Path | str, records: dict[str, CacheRecord] | None = None) -> None:
        """Initialize CacheStore.

        Args:
            path: Location of the cache document.
            records: Initial records (normally produced by load()).
        """
        self.path = Path(path)
        self._records: dict[str, CacheRecord] = dict(records or {})

    @classmethod
    def load(cls, path: Path | str) -> CacheStore:
        """Load the store from disk.

        A missing, unreadable, or corrupt document yields an empty store.
        """
        path = Path(path)
        if not path.exists():
            return cls(path)

        try:
            raw = path.read_bytes()
        except OSError as e:
            logger.warning("Could not read cache file, starting empty", path=str(path), error=str(e))
            return cls(path)

        try:
            records = _parse_document(raw)
        except CacheSerializationError as e:
            logger.warning("Discarding corrupt cache file", path=str(path), error=str(e))
            return cls(path)

        logger.debug("Loaded cache", path=str(path), entries=len(records))
        return cls(path, records)

    def save(self) -> None:
        """Write the full mapping to disk, creating parent directories.

        Raises:
            CacheIOError: If the directory or file cannot be written.
        """
        doc = {
            "files": {
                content_hash: record.to_dict()
                for content_hash, record in self._records.items()
            }
        }

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_bytes(orjson.dumps(doc, option=orjson.OPT_INDENT_2))
        except OSError as e:
            raise CacheIOError(
                f"Failed to write cache file {self.path}",
                context={"operation": "writing cache file", "path": str(self.path), "error": str(e)},
            ) from e

    def get(self, content_hash: str) -> CacheRecord | None:
        """Get the record for a content hash."""
        return self._records.get(content_hash)

    def put(self, content_hash: str, record: CacheRecord) -> None:
        """Insert or replace the record for a content hash."""
        self._records[content_hash] = record

    def remove(self, content_hash: str) -> bool:
        """Drop the record for a content hash. Returns True if one existed."""
        return self._records.pop(content_hash, None) is not None

    def records(self) -> dict[str, CacheRecord]:
        """Snapshot of all records."""
        return dict(self._records)

    def sweep_expired(self, now: float | None = None) -> int:
        """Remove expired records and persist if anything was removed.

        A failed write is logged, not raised; the in-memory sweep stands.

        Returns:
            Number of records removed.
        """
        if now is None:
            now = time.time()

        expired = [h for h, record in self._records.items() if is_expired(record, now)]
        for content_hash in expired:
            del self._records[content_hash]

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired entries")
            try:
                self.save()
            except CacheIOError as e:
                logger.warning("Could not save cache after cleanup", error=str(e))

        return len(expired)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, content_hash: object) -> bool:
        return content_hash in self._records
