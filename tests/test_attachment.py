"""
Tests for request attachments.
"""

from __future__ import annotations

import base64
from pathlib import Path

import pytest

from conftest import Clock, FakeFileService
from datasheet.cache.coordinator import CacheCoordinator
from datasheet.cache.store import CacheStore
from datasheet.exceptions import CacheIOError
from datasheet.llm.attachment import Attachment, FileReference, resolve_attachment


class TestParts:
    """Test rendering attachments into request parts."""

    def test_inline_part(self) -> None:
        part = Attachment(mime_type="application/pdf", data=b"%PDF").to_part()

        assert part == {
            "inline_data": {
                "mime_type": "application/pdf",
                "data": base64.b64encode(b"%PDF").decode("ascii"),
            }
        }

    def test_file_part(self) -> None:
        part = FileReference(mime_type="application/pdf", file_uri="https://u/files/a").to_part()

        assert part == {
            "file_data": {"mime_type": "application/pdf", "file_uri": "https://u/files/a"}
        }

    def test_from_path_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(CacheIOError):
            Attachment.from_path(temp_dir / "missing.pdf")


class TestResolveAttachment:
    """Test choosing between inline bytes and an uploaded reference."""

    def test_without_coordinator_is_inline(self, sample_pdf: Path) -> None:
        source = resolve_attachment(sample_pdf)

        assert isinstance(source, Attachment)
        assert source.data == sample_pdf.read_bytes()

    def test_with_coordinator_is_file_reference(
        self,
        sample_pdf: Path,
        temp_dir: Path,
        fake_service: FakeFileService,
        clock: Clock,
    ) -> None:
        coordinator = CacheCoordinator(CacheStore(temp_dir / "c.json"), fake_service, clock=clock)

        source = resolve_attachment(sample_pdf, coordinator)

        assert isinstance(source, FileReference)
        assert source.file_uri == "https://files.example/v1beta/files/upload-1"
        assert source.mime_type == "application/pdf"
