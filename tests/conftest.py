"""
Pytest configuration and fixtures for datasheet-cli tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest

from datasheet.config import Settings, clear_settings_cache
from datasheet.types import FileStatus, UploadedFile, UploadSession

NOW = 1_760_000_000.0


class FakeFileService:
    """In-memory RemoteFileService that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.statuses: dict[str, FileStatus] = {}
        self.uploads = 0
        self.fail_start: Exception | None = None
        self.fail_send: Exception | None = None

    def start_upload(
        self, display_name: str, size_bytes: int, content_type: str
    ) -> UploadSession:
        self.calls.append(("start_upload", display_name))
        if self.fail_start is not None:
            raise self.fail_start
        return UploadSession(
            upload_url=f"https://upload.example/session/{self.uploads + 1}",
            display_name=display_name,
            size_bytes=size_bytes,
            content_type=content_type,
        )

    def send_bytes(self, session: UploadSession, data: bytes) -> UploadedFile:
        self.calls.append(("send_bytes", session.upload_url))
        if self.fail_send is not None:
            raise self.fail_send
        assert len(data) == session.size_bytes
        self.uploads += 1
        name = f"files/upload-{self.uploads}"
        self.statuses[name] = FileStatus.active()
        return UploadedFile(name=name, uri=f"https://files.example/v1beta/{name}")

    def check_active(self, name: str) -> FileStatus:
        self.calls.append(("check_active", name))
        return self.statuses.get(name, FileStatus.gone())

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)


class Clock:
    """Settable clock for expiry tests."""

    def __init__(self, now: float = NOW) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def fake_service() -> FakeFileService:
    """Provide a fresh in-memory file service."""
    return FakeFileService()


@pytest.fixture
def clock() -> Clock:
    """Provide a settable clock starting at a fixed time."""
    return Clock()


@pytest.fixture
def sample_pdf(temp_dir: Path) -> Path:
    """A 1,000-byte file named spec.pdf."""
    path = temp_dir / "docs" / "spec.pdf"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"%PDF-1.7\n" + b"x" * 991)
    return path


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing.

    Sets a fake API key and points the cache at the temp directory.
    """
    env_vars = {
        "DATASHEET_API_KEY": "",
        "GOOGLE_API_KEY": "",
        "GEMINI_API_KEY": "test-fake-gemini-key-1234567890",
        "GEMINI_BASE_URL": "https://generativelanguage.googleapis.com/v1beta",
        "DATASHEET_CACHE_DIR": str(temp_dir / "cache"),
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Settings:
    """Provide a Settings instance with mock configuration."""
    from datasheet.config import get_settings

    return get_settings()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
