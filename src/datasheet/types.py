"""
Core types for the upload cache.

This module defines:
- CacheRecord: one cached upload, keyed by content hash
- FileState / FileStatus: tri-state result of a remote status check
- UploadSession / UploadedFile: the two halves of the upload handshake
- UploadState: states of the upload handshake
- Time constants
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from datasheet.exceptions import CacheSerializationError

# Gemini deletes uploaded files 48 hours after upload
REMOTE_FILE_TTL_SECONDS = 48 * 60 * 60

# Records are treated as expired this long before the remote deadline
EXPIRY_MARGIN_SECONDS = 60 * 60

DEFAULT_CONTENT_TYPE = "application/pdf"


@dataclass(frozen=True)
class CacheRecord:
    """A file uploaded to the remote store.

    Attributes:
        content_hash: SHA-256 hex digest of the uploaded bytes.
        name: Remote file handle (e.g., "files/abc123").
        uri: Remote URI embedded in generation requests.
        expires_at: Epoch seconds when the remote store deletes the file.
        file_size: Size of the uploaded bytes.
    """

    content_hash: str
    name: str
    uri: str
    expires_at: int
    file_size: int

    def is_expired(self, now: float | None = None, margin: int = EXPIRY_MARGIN_SECONDS) -> bool:
        """Whether the record is expired or about to expire."""
        if now is None:
            now = time.time()
        return now + margin >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        """Document form; the hash is the key and is not repeated."""
        return {
            "name": self.name,
            "uri": self.uri,
            "expires_at": self.expires_at,
            "file_size": self.file_size,
        }

    @classmethod
    def from_dict(cls, content_hash: str, data: Any) -> CacheRecord:
        """Build a record from its document form.

        Raises:
            CacheSerializationError: If fields are missing or mistyped.
        """
        if not isinstance(data, dict):
            raise CacheSerializationError(
                "Cache entry is not an object", context={"hash": content_hash}
            )

        name = data.get("name")
        uri = data.get("uri")
        expires_at = data.get("expires_at")
        file_size = data.get("file_size")

        if not isinstance(name, str) or not isinstance(uri, str):
            raise CacheSerializationError(
                "Cache entry is missing name or uri", context={"hash": content_hash}
            )
        for field_name, value in (("expires_at", expires_at), ("file_size", file_size)):
            # bool is an int subclass
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise CacheSerializationError(
                    f"Cache entry has invalid {field_name}",
                    context={"hash": content_hash, field_name: value},
                )

        return cls(
            content_hash=content_hash,
            name=name,
            uri=uri,
            expires_at=expires_at,
            file_size=file_size,
        )


class FileState(str, Enum):
    """Remote state of a previously uploaded file."""

    ACTIVE = "active"
    GONE = "gone"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FileStatus:
    """Result of a remote status check.

    ``error`` is set only for UNKNOWN and explains why the state is unknown.
    """

    state: FileState
    error: str | None = None

    @classmethod
    def active(cls) -> FileStatus:
        return cls(FileState.ACTIVE)

    @classmethod
    def gone(cls) -> FileStatus:
        return cls(FileState.GONE)

    @classmethod
    def unknown(cls, error: str) -> FileStatus:
        return cls(FileState.UNKNOWN, error)

    @property
    def is_active(self) -> bool:
        return self.state is FileState.ACTIVE


@dataclass(frozen=True)
class UploadSession:
    """An upload session opened by the first handshake step."""

    upload_url: str
    display_name: str
    size_bytes: int
    content_type: str


@dataclass(frozen=True)
class UploadedFile:
    """Remote identity of a finalized upload."""

    name: str
    uri: str


class UploadState(str, Enum):
    """States of the two-phase upload handshake."""

    IDLE = "idle"
    SESSION_STARTED = "session_started"
    UPLOADED = "uploaded"
    FAILED = "failed"
