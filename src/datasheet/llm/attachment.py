"""
Attachments for Gemini generation requests.

A datasheet reaches the model either inline (base64 bytes in the request) or
as a reference to a file uploaded through the File API. Both render to the
``parts`` entry a generateContent request embeds.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Union

from datasheet.exceptions import CacheIOError
from datasheet.types import DEFAULT_CONTENT_TYPE, CacheRecord

if TYPE_CHECKING:
    from datasheet.cache.coordinator import CacheCoordinator


@dataclass(frozen=True)
class Attachment:
    """Raw file bytes sent inline."""

    mime_type: str
    data: bytes

    @classmethod
    def from_path(cls, path: Path | str, mime_type: str = DEFAULT_CONTENT_TYPE) -> Attachment:
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise CacheIOError(
                f"Failed to read {path}",
                context={"operation": "reading source file", "path": str(path), "error": str(e)},
            ) from e
        return cls(mime_type=mime_type, data=data)

    def to_part(self) -> dict[str, Any]:
        return {
            "inline_data": {
                "mime_type": self.mime_type,
                "data": base64.b64encode(self.data).decode("ascii"),
            }
        }


@dataclass(frozen=True)
class FileReference:
    """A file already uploaded to the Gemini File API."""

    mime_type: str
    file_uri: str

    @classmethod
    def from_record(cls, record: CacheRecord, mime_type: str = DEFAULT_CONTENT_TYPE) -> FileReference:
        return cls(mime_type=mime_type, file_uri=record.uri)

    def to_part(self) -> dict[str, Any]:
        return {
            "file_data": {
                "mime_type": self.mime_type,
                "file_uri": self.file_uri,
            }
        }


AttachmentSource = Union[Attachment, FileReference]


def resolve_attachment(
    path: Path | str,
    coordinator: CacheCoordinator | None = None,
    mime_type: str = DEFAULT_CONTENT_TYPE,
) -> AttachmentSource:
    """Turn a local file into something a generation request can embed.

    With a coordinator the file goes through the upload cache and a
    FileReference is returned; without one the bytes are sent inline.
    """
    if coordinator is None:
        return Attachment.from_path(path, mime_type)

    record = coordinator.get_or_upload(path, content_type=mime_type)
    return FileReference.from_record(record, mime_type)
