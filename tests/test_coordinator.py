"""
Tests for the get-or-upload coordinator.
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import Clock, FakeFileService
from datasheet.cache.coordinator import CacheCoordinator, display_name_for, open_coordinator
from datasheet.cache.hashing import compute_hash
from datasheet.cache.store import CacheStore
from datasheet.config import Settings
from datasheet.exceptions import CacheIOError, ConfigurationError, RemoteProtocolError, TransportError
from datasheet.types import CacheRecord, FileStatus, REMOTE_FILE_TTL_SECONDS


@pytest.fixture
def cache_file(temp_dir: Path) -> Path:
    return temp_dir / "cache" / "gemini_files.json"


@pytest.fixture
def coordinator(cache_file: Path, fake_service: FakeFileService, clock: Clock) -> CacheCoordinator:
    return CacheCoordinator(CacheStore.load(cache_file), fake_service, clock=clock)


class TestFirstUpload:
    """First upload, then a cache hit."""

    def test_first_call_uploads_and_persists(
        self,
        coordinator: CacheCoordinator,
        fake_service: FakeFileService,
        sample_pdf: Path,
        cache_file: Path,
        clock: Clock,
    ) -> None:
        record = coordinator.get_or_upload(sample_pdf)

        assert record.file_size == 1000
        assert record.content_hash == compute_hash(sample_pdf.read_bytes())
        assert record.expires_at == int(clock.now) + REMOTE_FILE_TTL_SECONDS
        assert fake_service.calls[0] == ("start_upload", "spec.pdf")
        assert fake_service.count("send_bytes") == 1
        assert fake_service.count("check_active") == 0

        persisted = CacheStore.load(cache_file).get(record.content_hash)
        assert persisted == record

    def test_second_call_within_the_hour_hits_cache(
        self,
        coordinator: CacheCoordinator,
        fake_service: FakeFileService,
        sample_pdf: Path,
        clock: Clock,
    ) -> None:
        first = coordinator.get_or_upload(sample_pdf)
        clock.advance(30 * 60)

        second = coordinator.get_or_upload(sample_pdf)

        assert second == first
        assert fake_service.count("start_upload") == 1
        assert fake_service.count("send_bytes") == 1

    def test_warm_cache_is_idempotent(
        self,
        cache_file: Path,
        fake_service: FakeFileService,
        sample_pdf: Path,
        clock: Clock,
    ) -> None:
        """Across separate store loads, a verified hit costs one status call."""
        CacheCoordinator(CacheStore.load(cache_file), fake_service, clock=clock).get_or_upload(sample_pdf)
        fake_service.calls.clear()

        first = CacheCoordinator(CacheStore.load(cache_file), fake_service, clock=clock).get_or_upload(sample_pdf)
        calls_after_first = list(fake_service.calls)
        second = CacheCoordinator(CacheStore.load(cache_file), fake_service, clock=clock).get_or_upload(sample_pdf)

        assert first == second
        assert [op for op, _ in calls_after_first] == ["check_active"]
        assert fake_service.count("check_active") == 2
        assert fake_service.count("start_upload") == 0
        assert fake_service.count("send_bytes") == 0

    def test_renamed_copy_reuses_upload(
        self,
        coordinator: CacheCoordinator,
        fake_service: FakeFileService,
        sample_pdf: Path,
        temp_dir: Path,
    ) -> None:
        copy = temp_dir / "renamed.pdf"
        copy.write_bytes(sample_pdf.read_bytes())

        first = coordinator.get_or_upload(sample_pdf)
        second = coordinator.get_or_upload(copy)

        assert second.name == first.name
        assert fake_service.count("send_bytes") == 1


class TestReupload:
    """Branches that discard a cached record and upload again."""

    def test_gone_triggers_fresh_upload(
        self,
        coordinator: CacheCoordinator,
        fake_service: FakeFileService,
        sample_pdf: Path,
        cache_file: Path,
    ) -> None:
        original = coordinator.get_or_upload(sample_pdf)
        fake_service.statuses[original.name] = FileStatus.gone()

        fresh = coordinator.get_or_upload(sample_pdf)

        assert fresh.name != original.name
        assert fresh.uri != original.uri
        assert fake_service.count("send_bytes") == 2
        assert CacheStore.load(cache_file).get(fresh.content_hash) == fresh

    def test_unknown_state_triggers_fresh_upload(
        self,
        coordinator: CacheCoordinator,
        fake_service: FakeFileService,
        sample_pdf: Path,
    ) -> None:
        original = coordinator.get_or_upload(sample_pdf)
        fake_service.statuses[original.name] = FileStatus.unknown("state=PROCESSING")

        fresh = coordinator.get_or_upload(sample_pdf)

        assert fresh.name != original.name
        assert fake_service.count("check_active") == 1

    def test_expired_record_skips_verification(
        self,
        coordinator: CacheCoordinator,
        fake_service: FakeFileService,
        sample_pdf: Path,
        clock: Clock,
    ) -> None:
        original = coordinator.get_or_upload(sample_pdf)
        clock.advance(REMOTE_FILE_TTL_SECONDS - 30 * 60)

        fresh = coordinator.get_or_upload(sample_pdf)

        assert fresh.name != original.name
        assert fresh.expires_at == int(clock.now) + REMOTE_FILE_TTL_SECONDS
        assert fake_service.count("check_active") == 0

    def test_changed_content_uploads_new_entry(
        self,
        coordinator: CacheCoordinator,
        fake_service: FakeFileService,
        sample_pdf: Path,
    ) -> None:
        first = coordinator.get_or_upload(sample_pdf)
        sample_pdf.write_bytes(b"%PDF-1.7 revised")

        second = coordinator.get_or_upload(sample_pdf)

        assert second.content_hash != first.content_hash
        assert len(coordinator.store) == 2


class TestErrors:
    """Errors propagate; nothing is cached on failure."""

    def test_missing_file_raises_io_error(
        self, coordinator: CacheCoordinator, fake_service: FakeFileService, temp_dir: Path
    ) -> None:
        with pytest.raises(CacheIOError):
            coordinator.get_or_upload(temp_dir / "nope.pdf")

        assert fake_service.calls == []

    def test_transport_failure_propagates(
        self,
        coordinator: CacheCoordinator,
        fake_service: FakeFileService,
        sample_pdf: Path,
        cache_file: Path,
    ) -> None:
        fake_service.fail_send = TransportError("Failed to upload file data")

        with pytest.raises(TransportError):
            coordinator.get_or_upload(sample_pdf)

        assert len(coordinator.store) == 0
        assert not cache_file.exists()

    def test_failed_attempt_restarts_from_scratch(
        self,
        coordinator: CacheCoordinator,
        fake_service: FakeFileService,
        sample_pdf: Path,
    ) -> None:
        fake_service.fail_start = RemoteProtocolError("Failed to start upload (500)")
        with pytest.raises(RemoteProtocolError):
            coordinator.get_or_upload(sample_pdf)

        fake_service.fail_start = None
        record = coordinator.get_or_upload(sample_pdf)

        assert record.name == "files/upload-1"
        assert fake_service.count("start_upload") == 2


class TestDisplayName:
    def test_uses_file_name(self) -> None:
        assert display_name_for(Path("/data/sheets/LM317.pdf")) == "LM317.pdf"

    def test_falls_back_without_name(self) -> None:
        assert display_name_for(Path("/")) == "datasheet.pdf"


class TestOpenCoordinator:
    """Test building a coordinator from settings."""

    def test_requires_api_key(self, mock_env_vars: dict[str, str]) -> None:
        settings = Settings(_env_file=None, GEMINI_API_KEY="")

        with pytest.raises(ConfigurationError):
            with open_coordinator(settings):
                pass

    def test_sweeps_expired_entries_on_open(
        self, mock_settings: Settings, sample_pdf: Path
    ) -> None:
        store = CacheStore(mock_settings.cache_file)
        store.put("a" * 64, CacheRecord("a" * 64, "files/old", "https://u/old", 1, 10))
        store.save()

        with open_coordinator(mock_settings) as coordinator:
            assert len(coordinator.store) == 0
            assert coordinator.service.base_url == mock_settings.GEMINI_BASE_URL

        assert len(CacheStore.load(mock_settings.cache_file)) == 0

    def test_closes_service_on_exit(self, mock_settings: Settings) -> None:
        with patch("datasheet.cache.coordinator.GeminiFileService.close") as close:
            with open_coordinator(mock_settings, base_url="https://proxy.local/v1beta"):
                pass

        close.assert_called_once()
