"""
CacheCoordinator: get-or-upload for Gemini file references.

For a local file:
1. Hash the bytes and look the hash up in the CacheStore.
2. If a live record exists, confirm with the remote service that the file
   is still ACTIVE and return it.
3. Otherwise (no record, expired, gone, or unknown state) upload the bytes
   and store a fresh record.

Any doubt about the remote state leads to a re-upload, never to handing out
a possibly stale reference.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from datasheet.cache.hashing import hash_file
from datasheet.cache.store import CacheStore
from datasheet.config import Settings
from datasheet.llm.files import GeminiFileService, RemoteFileService, upload_file
from datasheet.logging import get_logger, log_context
from datasheet.types import (
    DEFAULT_CONTENT_TYPE,
    EXPIRY_MARGIN_SECONDS,
    REMOTE_FILE_TTL_SECONDS,
    CacheRecord,
    FileState,
)

logger = get_logger(__name__)

FALLBACK_DISPLAY_NAME = "datasheet.pdf"


def display_name_for(path: Path) -> str:
    """Display name sent to the remote store: the file name of the path."""
    return path.name or FALLBACK_DISPLAY_NAME


class CacheCoordinator:
    """Orchestrates hash, lookup, verify, upload and persist."""

    def __init__(
        self,
        store: CacheStore,
        service: RemoteFileService,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the coordinator.

        Args:
            store: Loaded cache store.
            service: Remote file service used for verification and upload.
            clock: Returns the current epoch time in seconds.
        """
        self.store = store
        self.service = service
        self.clock = clock

    def _cached_if_active(self, record: CacheRecord) -> CacheRecord | None:
        if record.is_expired(now=self.clock(), margin=EXPIRY_MARGIN_SECONDS):
            logger.info("Cached file expired, re-uploading", name=record.name)
            return None

        status = self.service.check_active(record.name)
        if status.is_active:
            logger.info(f"Using cached file: {record.uri}")
            return record
        if status.state is FileState.GONE:
            logger.info("Cached file no longer exists on Gemini, re-uploading", name=record.name)
        else:
            logger.warning(f"Error checking file: {status.error}, re-uploading", name=record.name)
        return None

    def get_or_upload(
        self,
        path: Path | str,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> CacheRecord:
        """Return a live remote record for the file, uploading if needed.

        Args:
            path: Local file to reference.
            content_type: MIME type declared for the upload.

        Returns:
            The cached or newly created CacheRecord.

        Raises:
            CacheIOError: If the file cannot be read or the cache cannot be saved.
            TransportError: If the upload cannot reach the service.
            RemoteProtocolError: If the service rejects the upload or answers
                with a malformed response.
        """
        path = Path(path)

        with log_context(operation="cache", source=str(path)):
            content_hash, data = hash_file(path)

            record = self.store.get(content_hash)
            if record is not None:
                cached = self._cached_if_active(record)
                if cached is not None:
                    return cached

            logger.info(f"Uploading {len(data)} bytes to Gemini...")
            uploaded = upload_file(self.service, data, display_name_for(path), content_type)

            record = CacheRecord(
                content_hash=content_hash,
                name=uploaded.name,
                uri=uploaded.uri,
                expires_at=int(self.clock()) + REMOTE_FILE_TTL_SECONDS,
                file_size=len(data),
            )
            logger.info(f"Uploaded successfully: {record.uri}")

            self.store.put(content_hash, record)
            self.store.save()
            return record


@contextmanager
def open_coordinator(
    settings: Settings,
    api_key: str | None = None,
    base_url: str | None = None,
) -> Iterator[CacheCoordinator]:
    """Load the cache, sweep expired entries, and yield a Gemini-backed coordinator.

    The HTTP client is closed when the context exits.

    Raises:
        ConfigurationError: If no API key can be resolved.
    """
    key = settings.resolve_api_key(api_key)
    store = CacheStore.load(settings.cache_file)
    store.sweep_expired()

    service = GeminiFileService(
        api_key=key,
        base_url=base_url or settings.GEMINI_BASE_URL,
        upload_timeout=settings.UPLOAD_TIMEOUT_SECONDS,
        status_timeout=settings.STATUS_TIMEOUT_SECONDS,
    )
    with service:
        yield CacheCoordinator(store, service)
