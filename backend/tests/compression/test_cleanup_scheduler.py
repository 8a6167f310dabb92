"""Tests for deferred, best-effort file cleanup."""

import asyncio

import pytest

from discompress.modules.compression.cleanup import CleanupScheduler, remove_files


class TestRemoveFiles:

    def test_removes_existing_and_skips_missing(self, tmp_path) -> None:
        present = tmp_path / "present.mp4"
        present.write_bytes(b"x")

        removed = remove_files([present, tmp_path / "gone.mp4", None])

        assert removed == 1
        assert not present.exists()

    def test_directory_is_skipped_without_raising(self, tmp_path) -> None:
        folder = tmp_path / "folder"
        folder.mkdir()

        assert remove_files([folder]) == 0
        assert folder.exists()


class TestCleanupScheduler:

    @pytest.mark.asyncio
    async def test_deletes_after_delay(self, tmp_path) -> None:
        target = tmp_path / "out.mp4"
        target.write_bytes(b"x")
        scheduler = CleanupScheduler(delay_seconds=0.05)

        scheduler.schedule([target])
        await asyncio.sleep(0)
        assert target.exists(), "file must survive until the delay elapses"
        assert scheduler.pending == 1

        await scheduler.drain()

        assert not target.exists()
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_tolerates_files_already_gone(self, tmp_path) -> None:
        scheduler = CleanupScheduler(delay_seconds=0)

        scheduler.schedule([tmp_path / "never-existed", None])
        await scheduler.drain()

        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_duplicate_paths_are_scheduled_once(self, tmp_path) -> None:
        target = tmp_path / "out.mp4"
        target.write_bytes(b"x")
        scheduler = CleanupScheduler(delay_seconds=0)

        scheduler.schedule([target, target])
        await scheduler.drain()

        assert not target.exists()

    @pytest.mark.asyncio
    async def test_flush_deletes_immediately(self, tmp_path) -> None:
        target = tmp_path / "out.mp4"
        target.write_bytes(b"x")
        scheduler = CleanupScheduler(delay_seconds=3600)

        scheduler.schedule([target])
        await scheduler.flush()

        assert not target.exists()
        assert scheduler.pending == 0
