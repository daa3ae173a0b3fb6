"""
Custom exception hierarchy for datasheet-cli.

All exceptions inherit from DatasheetError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class DatasheetError(Exception):
    """Base exception for all datasheet-cli errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(DatasheetError):
    """Raised when configuration is invalid or missing.

    Examples:
        - No API key on the command line or in the environment
    """

    pass


class CacheIOError(DatasheetError):
    """Raised when a local file cannot be read or written.

    Context should include:
        - operation: What was being done (e.g., "reading source file")
        - path: The local path involved
    """

    pass


class CacheSerializationError(DatasheetError):
    """Raised when the persisted cache document is corrupt.

    Recovered inside CacheStore.load(); callers normally never see it.
    """

    pass


class TransportError(DatasheetError):
    """Raised when the remote file service cannot be reached.

    Context should include:
        - operation: The remote operation (start_upload, send_bytes)
        - error: The underlying transport error
    """

    pass


class RemoteProtocolError(DatasheetError):
    """Raised when the remote service answers with an error or a malformed body.

    Context should include:
        - operation: The remote operation
        - status_code: HTTP status code if applicable
        - body: Response body (truncated) if applicable
    """

    pass


class RemoteStateError(DatasheetError):
    """Describes an ambiguous remote file state.

    Carried as the error of an UNKNOWN status check. The cache coordinator
    treats it as a reason to re-upload and never raises it.
    """

    pass
