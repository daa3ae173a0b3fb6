"""
Gemini File API client.

Implements the three remote calls the upload cache needs:
- start_upload: open a resumable upload session (metadata only)
- send_bytes: send the whole payload in one request and finalize it
- check_active: look up whether an uploaded file is still usable

Uploads never resume. A failed handshake is abandoned and a new attempt
starts again from IDLE with a fresh session.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx
import orjson

from datasheet.exceptions import (
    RemoteProtocolError,
    RemoteStateError,
    TransportError,
)
from datasheet.logging import get_logger
from datasheet.types import (
    DEFAULT_CONTENT_TYPE,
    FileStatus,
    UploadedFile,
    UploadSession,
    UploadState,
)

logger = get_logger(__name__)

UPLOAD_URL_HEADER = "x-goog-upload-url"
ERROR_BODY_LIMIT = 500


@runtime_checkable
class RemoteFileService(Protocol):
    """Protocol for remote file stores used by the upload cache."""

    def start_upload(
        self, display_name: str, size_bytes: int, content_type: str
    ) -> UploadSession:
        """Open an upload session for a payload of the given size and type."""
        ...

    def send_bytes(self, session: UploadSession, data: bytes) -> UploadedFile:
        """Send the whole payload to a session and finalize it."""
        ...

    def check_active(self, name: str) -> FileStatus:
        """Check whether a previously uploaded file is still active."""
        ...


def _unknown(message: str, **context: Any) -> FileStatus:
    return FileStatus.unknown(str(RemoteStateError(message, context=context)))


def _body_excerpt(response: httpx.Response) -> str:
    return response.text[:ERROR_BODY_LIMIT]


def upload_host(base_url: str) -> str:
    """Host part of the base URL; uploads live under /upload/<version>/files."""
    base_url = base_url.rstrip("/")
    for suffix in ("/v1beta", "/v1"):
        if base_url.endswith(suffix):
            return base_url[: -len(suffix)]
    return base_url


class GeminiFileService:
    """Gemini File API over plain REST using httpx.

    The API key is sent as the ``key`` query parameter and never appears in
    logs or error messages.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        upload_timeout: float = 600.0,
        status_timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the Gemini file service.

        Args:
            api_key: Google AI Studio API key.
            base_url: REST base URL ending in /v1beta or /v1.
            upload_timeout: Timeout for the byte transfer (seconds).
            status_timeout: Timeout for session start and status checks.
            client: Optional preconfigured client (tests pass a mock transport).
        """
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.upload_timeout = upload_timeout
        self.status_timeout = status_timeout
        self._client = client or httpx.Client(timeout=upload_timeout)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> GeminiFileService:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def start_url(self) -> str:
        return f"{upload_host(self.base_url)}/upload/v1beta/files"

    def start_upload(
        self,
        display_name: str,
        size_bytes: int,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> UploadSession:
        """Start a resumable upload and return its session.

        Raises:
            TransportError: If the service cannot be reached.
            RemoteProtocolError: On a non-success status, a missing upload URL,
                or a content type that cannot be sent as an HTTP header.
        """
        if not content_type.isascii():
            raise RemoteProtocolError(
                "Content type must be ASCII",
                context={"operation": "start_upload", "file": display_name, "content_type": content_type},
            )

        headers = {
            "X-Goog-Upload-Protocol": "resumable",
            "X-Goog-Upload-Command": "start",
            "X-Goog-Upload-Header-Content-Length": str(size_bytes),
            "X-Goog-Upload-Header-Content-Type": content_type,
            "Content-Type": "application/json",
        }

        try:
            response = self._client.post(
                self.start_url,
                params={"key": self._api_key},
                headers=headers,
                content=orjson.dumps({"file": {"display_name": display_name}}),
                timeout=self.status_timeout,
            )
        except httpx.HTTPError as e:
            raise TransportError(
                "Failed to start upload",
                context={"operation": "start_upload", "file": display_name, "error": str(e)},
            ) from e

        if not response.is_success:
            raise RemoteProtocolError(
                f"Failed to start upload ({response.status_code})",
                context={
                    "operation": "start_upload",
                    "file": display_name,
                    "status_code": response.status_code,
                    "body": _body_excerpt(response),
                },
            )

        upload_url = response.headers.get(UPLOAD_URL_HEADER)
        if not upload_url:
            raise RemoteProtocolError(
                f"Missing {UPLOAD_URL_HEADER} header",
                context={"operation": "start_upload", "file": display_name},
            )

        logger.debug("Upload session started", file=display_name, size_bytes=size_bytes)
        return UploadSession(
            upload_url=upload_url,
            display_name=display_name,
            size_bytes=size_bytes,
            content_type=content_type,
        )

    def send_bytes(self, session: UploadSession, data: bytes) -> UploadedFile:
        """Upload the whole payload at offset 0 and finalize the session.

        Raises:
            TransportError: If the service cannot be reached.
            RemoteProtocolError: On a non-success status or a response
                without file.name and file.uri.
        """
        headers = {
            "Content-Length": str(len(data)),
            "X-Goog-Upload-Offset": "0",
            "X-Goog-Upload-Command": "upload, finalize",
        }
        context: dict[str, Any] = {"operation": "send_bytes", "file": session.display_name}

        try:
            response = self._client.post(
                session.upload_url,
                headers=headers,
                content=data,
                timeout=self.upload_timeout,
            )
        except httpx.HTTPError as e:
            raise TransportError(
                "Failed to upload file data", context={**context, "error": str(e)}
            ) from e

        if not response.is_success:
            raise RemoteProtocolError(
                f"Failed to upload file ({response.status_code})",
                context={
                    **context,
                    "status_code": response.status_code,
                    "body": _body_excerpt(response),
                },
            )

        try:
            payload = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise RemoteProtocolError(
                "Upload response is not JSON", context={**context, "error": str(e)}
            ) from e

        file_obj = payload.get("file") if isinstance(payload, dict) else None
        if not isinstance(file_obj, dict):
            raise RemoteProtocolError("Missing 'file' in upload response", context=context)

        name = file_obj.get("name")
        if not isinstance(name, str) or not name:
            raise RemoteProtocolError("Missing 'name' in file response", context=context)

        uri = file_obj.get("uri")
        if not isinstance(uri, str) or not uri:
            raise RemoteProtocolError("Missing 'uri' in file response", context=context)

        return UploadedFile(name=name, uri=uri)

    def check_active(self, name: str) -> FileStatus:
        """Check the remote state of an uploaded file.

        Never raises: anything other than a clear answer is UNKNOWN.
        """
        try:
            response = self._client.get(
                f"{self.base_url}/{name}",
                params={"key": self._api_key},
                timeout=self.status_timeout,
            )
        except httpx.HTTPError as e:
            return _unknown("Error checking file", file=name, error=str(e))

        logger.debug("Checked file status", file=name, status_code=response.status_code)
        if response.status_code == httpx.codes.NOT_FOUND:
            return FileStatus.gone()

        if not response.is_success:
            return _unknown(f"Unexpected status checking file: {response.status_code}", file=name)

        try:
            info = orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            return _unknown("File info is not JSON", file=name, error=str(e))

        state = info.get("state") if isinstance(info, dict) else None
        if state == "ACTIVE":
            return FileStatus.active()

        return _unknown(f"File is not active (state={state or 'UNKNOWN'})", file=name)


class UploadHandshake:
    """One attempt at the two-phase upload.

    IDLE -> SESSION_STARTED -> UPLOADED, with any error moving to FAILED.
    FAILED and UPLOADED are terminal; a retry needs a new handshake.
    """

    def __init__(self, service: RemoteFileService) -> None:
        self.service = service
        self.state = UploadState.IDLE
        self.session: UploadSession | None = None
        self.result: UploadedFile | None = None

    def _require(self, expected: UploadState, step: str) -> None:
        if self.state is not expected:
            raise RuntimeError(
                f"Cannot {step} from state {self.state.value}; start a new upload"
            )

    def start(self, display_name: str, size_bytes: int, content_type: str) -> UploadSession:
        """Open the upload session."""
        self._require(UploadState.IDLE, "start upload")
        try:
            self.session = self.service.start_upload(display_name, size_bytes, content_type)
        except Exception:
            self.state = UploadState.FAILED
            raise
        self.state = UploadState.SESSION_STARTED
        return self.session

    def send(self, data: bytes) -> UploadedFile:
        """Send the payload into the open session."""
        self._require(UploadState.SESSION_STARTED, "send bytes")
        if self.session is None:
            raise RuntimeError("Cannot send bytes without an upload session")
        try:
            self.result = self.service.send_bytes(self.session, data)
        except Exception:
            self.state = UploadState.FAILED
            raise
        self.state = UploadState.UPLOADED
        return self.result


def upload_file(
    service: RemoteFileService,
    data: bytes,
    display_name: str,
    content_type: str = DEFAULT_CONTENT_TYPE,
) -> UploadedFile:
    """Run a full upload handshake for data."""
    handshake = UploadHandshake(service)
    handshake.start(display_name, len(data), content_type)
    return handshake.send(data)
