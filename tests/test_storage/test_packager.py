"""Unit tests for ArchivePackager (genforge.storage.packager).

Tests cover:
- pack (contents, relative names, compression, atomic replace, errors)
- is_stale / ensure_fresh (missing, stale, fresh and corrupt archives)
- Rebuild after an upsert picks up new files
"""

from __future__ import annotations

import os
import threading
import zipfile
from pathlib import Path
from unittest.mock import patch

import pytest

from genforge.storage import (
    ArchiveHandle,
    ArchivePackager,
    LocalDiskBackend,
    PackagingError,
    ProjectMaterializer,
    UnsafePathError,
)
from genforge.utils import KeyedLocks


@pytest.fixture
def archives_dir(tmp_path: Path) -> Path:
    return tmp_path / "archives"


@pytest.fixture
def locks() -> KeyedLocks:
    return KeyedLocks()


@pytest.fixture
def packager(disk_backend: LocalDiskBackend, archives_dir: Path, locks: KeyedLocks) -> ArchivePackager:
    return ArchivePackager(disk_backend, archives_dir, locks)


@pytest.fixture
def materializer(disk_backend: LocalDiskBackend, locks: KeyedLocks) -> ProjectMaterializer:
    return ProjectMaterializer(disk_backend, locks)


def _names(path: Path) -> list[str]:
    with zipfile.ZipFile(path) as archive:
        return sorted(archive.namelist())


# ---------------------------------------------------------------------------
# pack
# ---------------------------------------------------------------------------


class TestPack:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_pack_contents(self, packager, materializer, archives_dir):
        await materializer.materialize(
            {"index.html": "<h1>Hi</h1>", "src/main.js": "run()"}, project_id="p1"
        )
        handle = await packager.pack("p1")

        assert isinstance(handle, ArchiveHandle)
        assert handle.path == archives_dir / "p1.zip"
        assert handle.file_count == 2
        assert handle.size_bytes == handle.path.stat().st_size
        assert _names(handle.path) == ["index.html", "src/main.js"]
        with zipfile.ZipFile(handle.path) as archive:
            assert archive.read("src/main.js") == b"run()"
            assert archive.getinfo("index.html").compress_type == zipfile.ZIP_DEFLATED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_to_dict(self, packager, materializer):
        await materializer.materialize({"a.txt": "x"}, project_id="p1")
        body = (await packager.pack("p1")).to_dict()
        assert set(body) == {"path", "fileCount", "sizeBytes"}
        assert body["fileCount"] == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, packager, materializer, archives_dir):
        await materializer.materialize({"a.txt": "x"}, project_id="p1")
        await packager.pack("p1")
        await packager.pack("p1")
        assert [p.name for p in archives_dir.iterdir()] == ["p1.zip"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_project(self, packager):
        with pytest.raises(PackagingError) as exc_info:
            await packager.pack("nope")
        assert exc_info.value.code == "packaging_failed"
        assert exc_info.value.project_id == "nope"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_io_error_wrapped(self, packager, materializer, archives_dir):
        await materializer.materialize({"a.txt": "x"}, project_id="p1")
        with patch("genforge.storage.packager.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PackagingError, match="disk full"):
                await packager.pack("p1")
        assert list(archives_dir.iterdir()) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_project_untouched_on_failure(self, packager, materializer):
        await materializer.materialize({"a.txt": "x"}, project_id="p1")
        with patch("genforge.storage.packager.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PackagingError):
                await packager.pack("p1")
        assert await materializer.read_project("p1") == {"a.txt": "x"}

    @pytest.mark.unit
    def test_archive_path_rejects_bad_id(self, packager):
        with pytest.raises(UnsafePathError):
            packager.archive_path("../p1")


# ---------------------------------------------------------------------------
# Staleness
# ---------------------------------------------------------------------------


class TestFreshness:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_archive_is_stale(self, packager, materializer):
        await materializer.materialize({"a.txt": "x"}, project_id="p1")
        assert packager.is_stale("p1") is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_newer_archive_is_fresh(self, packager, materializer):
        await materializer.materialize({"a.txt": "x"}, project_id="p1")
        handle = await packager.pack("p1")
        os.utime(handle.path, (4_000_000_000, 4_000_000_000))
        assert packager.is_stale("p1") is False

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_equal_mtime_is_stale(self, packager, materializer, disk_backend):
        await materializer.materialize({"a.txt": "x"}, project_id="p1")
        handle = await packager.pack("p1")
        stamp = 3_000_000_000
        for path in [disk_backend.root / "p1", disk_backend.root / "p1" / "a.txt", handle.path]:
            os.utime(path, (stamp, stamp))
        assert packager.is_stale("p1") is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ensure_fresh_reuses_archive(self, packager, materializer):
        await materializer.materialize({"a.txt": "x"}, project_id="p1")
        handle = await packager.pack("p1")
        os.utime(handle.path, (4_000_000_000, 4_000_000_000))

        with patch.object(packager, "pack") as pack:
            again = await packager.ensure_fresh("p1")
        pack.assert_not_called()
        assert again.path == handle.path
        assert again.file_count == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ensure_fresh_reads_archive_off_loop(self, packager, materializer):
        await materializer.materialize({"a.txt": "x"}, project_id="p1")
        handle = await packager.pack("p1")
        os.utime(handle.path, (4_000_000_000, 4_000_000_000))

        threads: list[int] = []
        original = packager._describe

        def spy(project_id):
            threads.append(threading.get_ident())
            return original(project_id)

        packager._describe = spy
        again = await packager.ensure_fresh("p1")

        assert again.file_count == 1
        assert len(threads) == 1
        assert threads[0] != threading.get_ident()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ensure_fresh_corrupt_archive(self, packager, materializer):
        await materializer.materialize({"a.txt": "x"}, project_id="p1")
        handle = await packager.pack("p1")
        handle.path.write_bytes(b"not a zip")
        os.utime(handle.path, (4_000_000_000, 4_000_000_000))

        with pytest.raises(PackagingError) as exc_info:
            await packager.ensure_fresh("p1")
        assert exc_info.value.project_id == "p1"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_ensure_fresh_builds_missing(self, packager, materializer):
        await materializer.materialize({"a.txt": "x"}, project_id="p1")
        handle = await packager.ensure_fresh("p1")
        assert _names(handle.path) == ["a.txt"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_repack_after_upsert(self, packager, materializer):
        await materializer.materialize({"a.txt": "x", "b.txt": "y"}, project_id="p1")
        first = await packager.pack("p1")
        assert _names(first.path) == ["a.txt", "b.txt"]

        await materializer.write_file("p1", "c.txt", "z")
        # put the archive clearly behind the new file, whatever the clock resolution
        os.utime(first.path, (1_000_000_000, 1_000_000_000))

        refreshed = await packager.ensure_fresh("p1")
        assert _names(refreshed.path) == ["a.txt", "b.txt", "c.txt"]
        assert refreshed.file_count == 3

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_pack_then_upsert_then_pack(self, packager, materializer):
        await materializer.materialize({"a.txt": "x", "b.txt": "y"}, project_id="p1")
        await packager.pack("p1")
        await materializer.materialize({"c.txt": "z"}, project_id="p1")
        handle = await packager.pack("p1")
        assert _names(handle.path) == ["a.txt", "b.txt", "c.txt"]
