"""Storage backends for materialized projects.

A backend stores one file tree per project id. Its methods are blocking;
:class:`~genforge.storage.materializer.ProjectMaterializer` calls them from
a thread-pool executor and is the only place that serialises writers.

Two implementations ship:

* :class:`LocalDiskBackend` -- ``<root>/<project_id>/<relative path>``.
* :class:`InMemoryBackend` -- dictionaries, for deterministic tests.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from genforge.extraction.paths import normalize_relative_path
from genforge.utils import is_safe_identifier

from .errors import UnsafePathError


@dataclass
class ProjectInfo:
    """Listing entry for one stored project."""

    project_id: str
    file_count: int
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "projectId": self.project_id,
            "fileCount": self.file_count,
            "createdAt": self.created_at.isoformat(),
        }


@runtime_checkable
class StorageBackend(Protocol):
    def project_exists(self, project_id: str) -> bool: ...
    def create_project(self, project_id: str) -> bool: ...
    def write_file(self, project_id: str, path: str, content: str) -> str: ...
    def read_files(self, project_id: str) -> dict[str, str]: ...
    def iter_files(self, project_id: str) -> Iterator[tuple[str, bytes]]: ...
    def list_projects(self) -> list[ProjectInfo]: ...
    def root_for(self, project_id: str) -> str: ...
    def last_modified(self, project_id: str) -> float: ...


def check_project_id(project_id: str) -> str:
    """Return *project_id* if it is usable as a directory name.

    Raises:
        UnsafePathError: For empty ids, ``.``/``..`` and ids containing
            separators or other characters outside ``[A-Za-z0-9_.-]``.
    """
    if not isinstance(project_id, str) or not is_safe_identifier(project_id):
        raise UnsafePathError(str(project_id), "invalid project id")
    return project_id


def check_relative_path(project_id: str, path: str) -> str:
    """Return the normalized form of *path* or raise :class:`UnsafePathError`."""
    try:
        return normalize_relative_path(path)
    except ValueError as exc:
        raise UnsafePathError(path, str(exc), project_id=project_id) from None


# ---------------------------------------------------------------------------
# Local disk
# ---------------------------------------------------------------------------


class LocalDiskBackend:
    """Projects as directories below *root*.

    Every resolved write target is checked against the project directory
    after symlink resolution, so neither ``..`` tricks nor symlinks planted
    inside a project can redirect a write outside it.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _project_dir(self, project_id: str) -> Path:
        return self.root / check_project_id(project_id)

    def _resolve(self, project_id: str, path: str) -> Path:
        relative = check_relative_path(project_id, path)
        base = self._project_dir(project_id).resolve()
        target = (base / relative).resolve()
        if target == base or not target.is_relative_to(base):
            raise UnsafePathError(path, "resolves outside the project root", project_id=project_id)
        return target

    def project_exists(self, project_id: str) -> bool:
        return self._project_dir(project_id).is_dir()

    def create_project(self, project_id: str) -> bool:
        """Create the project directory. Returns ``False`` if it already existed."""
        project_dir = self._project_dir(project_id)
        self.root.mkdir(parents=True, exist_ok=True)
        try:
            project_dir.mkdir()
        except FileExistsError:
            return False
        return True

    def write_file(self, project_id: str, path: str, content: str) -> str:
        """Write one file, creating intermediate directories.

        Returns:
            The normalized relative path that was written.
        """
        target = self._resolve(project_id, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content.encode("utf-8"))
        return target.relative_to(self._project_dir(project_id).resolve()).as_posix()

    def _files(self, project_id: str) -> list[Path]:
        project_dir = self._project_dir(project_id)
        if not project_dir.is_dir():
            return []
        return sorted(p for p in project_dir.rglob("*") if p.is_file())

    def read_files(self, project_id: str) -> dict[str, str]:
        project_dir = self._project_dir(project_id)
        return {
            p.relative_to(project_dir).as_posix(): p.read_text(encoding="utf-8", errors="replace")
            for p in self._files(project_id)
        }

    def iter_files(self, project_id: str) -> Iterator[tuple[str, bytes]]:
        project_dir = self._project_dir(project_id)
        for p in self._files(project_id):
            yield p.relative_to(project_dir).as_posix(), p.read_bytes()

    def list_projects(self) -> list[ProjectInfo]:
        if not self.root.is_dir():
            return []
        projects: list[ProjectInfo] = []
        for entry in sorted(self.root.iterdir()):
            if not entry.is_dir() or not is_safe_identifier(entry.name):
                continue
            stat = entry.stat()
            created = getattr(stat, "st_birthtime", stat.st_ctime)
            projects.append(
                ProjectInfo(
                    project_id=entry.name,
                    file_count=len(self._files(entry.name)),
                    created_at=datetime.fromtimestamp(created, tz=timezone.utc),
                )
            )
        return projects

    def root_for(self, project_id: str) -> str:
        return str(self._project_dir(project_id))

    def last_modified(self, project_id: str) -> float:
        """Newest modification time of the project directory or any file in it."""
        project_dir = self._project_dir(project_id)
        if not project_dir.is_dir():
            return 0.0
        newest = project_dir.stat().st_mtime
        for p in project_dir.rglob("*"):
            newest = max(newest, p.stat().st_mtime)
        return newest


# ---------------------------------------------------------------------------
# In memory
# ---------------------------------------------------------------------------


class InMemoryBackend:
    """Projects as dictionaries. Applies the same path rules as the disk backend."""

    def __init__(self) -> None:
        self._projects: dict[str, dict[str, str]] = {}
        self._created: dict[str, datetime] = {}
        self._modified: dict[str, float] = {}

    def project_exists(self, project_id: str) -> bool:
        return check_project_id(project_id) in self._projects

    def create_project(self, project_id: str) -> bool:
        if self.project_exists(project_id):
            return False
        self._projects[project_id] = {}
        self._created[project_id] = datetime.now(timezone.utc)
        self._modified[project_id] = time.time()
        return True

    def write_file(self, project_id: str, path: str, content: str) -> str:
        relative = check_relative_path(project_id, path)
        if not self.project_exists(project_id):
            self.create_project(project_id)
        files = self._projects[project_id]
        if any(existing.startswith(relative + "/") for existing in files):
            raise IsADirectoryError(f"{relative} is a directory")
        parents = relative.split("/")[:-1]
        for depth in range(1, len(parents) + 1):
            if "/".join(parents[:depth]) in files:
                raise NotADirectoryError(f"{'/'.join(parents[:depth])} is a file")
        content.encode("utf-8")  # lone surrogates fail here, as they do on disk
        files[relative] = content
        self._modified[project_id] = time.time()
        return relative

    def read_files(self, project_id: str) -> dict[str, str]:
        if not self.project_exists(project_id):
            return {}
        return dict(sorted(self._projects[project_id].items()))

    def iter_files(self, project_id: str) -> Iterator[tuple[str, bytes]]:
        for path, content in self.read_files(project_id).items():
            yield path, content.encode("utf-8")

    def list_projects(self) -> list[ProjectInfo]:
        return [
            ProjectInfo(
                project_id=project_id,
                file_count=len(files),
                created_at=self._created[project_id],
            )
            for project_id, files in sorted(self._projects.items())
        ]

    def root_for(self, project_id: str) -> str:
        return f"memory://{check_project_id(project_id)}"

    def last_modified(self, project_id: str) -> float:
        if not self.project_exists(project_id):
            return 0.0
        return self._modified[project_id]
