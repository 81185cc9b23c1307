"""Zip packaging of materialized projects.

Archives are a disposable projection of a project: the file tree in the
storage backend is authoritative, ``<archives_dir>/<project_id>.zip`` is
rebuilt whenever it is missing or older than the newest file it should
contain.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rich.console import Console

from genforge.utils import KeyedLocks, format_size

from .backends import StorageBackend, check_project_id
from .errors import PackagingError

console = Console()


@dataclass
class ArchiveHandle:
    """A built archive on disk."""

    project_id: str
    path: Path
    file_count: int
    size_bytes: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": str(self.path),
            "fileCount": self.file_count,
            "sizeBytes": self.size_bytes,
        }


class ArchivePackager:
    """Build and cache per-project zip archives.

    Args:
        backend: Storage backend the project files are read from.
        archives_dir: Directory that receives ``<project_id>.zip`` files.
        locks: Per-project locks shared with the materializer.
    """

    def __init__(
        self,
        backend: StorageBackend,
        archives_dir: str | Path,
        locks: KeyedLocks | None = None,
    ) -> None:
        self.backend = backend
        self.archives_dir = Path(archives_dir)
        self.locks = locks if locks is not None else KeyedLocks()

    def archive_path(self, project_id: str) -> Path:
        return self.archives_dir / f"{check_project_id(project_id)}.zip"

    def _build(self, project_id: str) -> ArchiveHandle:
        """Write the archive to a temporary file, then move it into place."""
        if not self.backend.project_exists(project_id):
            raise PackagingError(f"Project {project_id} does not exist", project_id=project_id)

        target = self.archive_path(project_id)
        self.archives_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{project_id}-", suffix=".zip.tmp", dir=self.archives_dir
        )
        file_count = 0
        try:
            with os.fdopen(fd, "wb") as fh:
                with zipfile.ZipFile(fh, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
                    for relative, data in self.backend.iter_files(project_id):
                        archive.writestr(relative, data)
                        file_count += 1
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        return ArchiveHandle(
            project_id=project_id,
            path=target,
            file_count=file_count,
            size_bytes=target.stat().st_size,
        )

    async def pack(self, project_id: str) -> ArchiveHandle:
        """(Re)build the archive for *project_id* unconditionally.

        Raises:
            PackagingError: If the project is missing or the archive cannot
                be written. The project itself is never modified.
        """
        loop = asyncio.get_running_loop()
        async with self.locks.hold(project_id):
            try:
                handle = await loop.run_in_executor(None, self._build, project_id)
            except PackagingError:
                raise
            except (OSError, ValueError, zipfile.BadZipFile) as exc:
                raise PackagingError(
                    f"ZIP creation failed for {project_id}: {exc}", project_id=project_id
                ) from exc

        console.print(
            f"[green]Packed[/green] {handle.file_count} file(s) into {handle.path.name} "
            f"({format_size(handle.size_bytes)})"
        )
        return handle

    def is_stale(self, project_id: str) -> bool:
        """Return ``True`` if the archive is missing or older than the project.

        Equal timestamps count as stale: file systems with coarse clocks can
        stamp an archive and a file written right after it identically.
        """
        target = self.archive_path(project_id)
        if not target.is_file():
            return True
        return self.backend.last_modified(project_id) >= target.stat().st_mtime

    async def ensure_fresh(self, project_id: str) -> ArchiveHandle:
        """Return an up-to-date archive, rebuilding it only when stale."""
        loop = asyncio.get_running_loop()
        stale = await loop.run_in_executor(None, self.is_stale, project_id)
        if stale:
            return await self.pack(project_id)
        try:
            return await loop.run_in_executor(None, self._describe, project_id)
        except (OSError, zipfile.BadZipFile) as exc:
            raise PackagingError(
                f"Cannot read archive for {project_id}: {exc}", project_id=project_id
            ) from exc

    def _describe(self, project_id: str) -> ArchiveHandle:
        """Handle for the archive already on disk."""
        target = self.archive_path(project_id)
        with zipfile.ZipFile(target) as archive:
            file_count = len(archive.namelist())
        return ArchiveHandle(
            project_id=project_id,
            path=target,
            file_count=file_count,
            size_bytes=target.stat().st_size,
        )
