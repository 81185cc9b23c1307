"""Materialize validated file mappings into the project store.

All project writes go through :class:`ProjectMaterializer`. It owns project
id generation, upsert semantics and per-project serialisation, and keeps
blocking backend I/O off the event loop.

Upsert means: files in the mapping are created or overwritten, files already
in the project but absent from the mapping are left alone. A chat turn that
returns only the changed files therefore never loses the rest of the
project.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from rich.console import Console

from genforge.errors import ProjectNotFound
from genforge.utils import KeyedLocks, timestamp_id

from .backends import ProjectInfo, StorageBackend, check_project_id, check_relative_path
from .errors import MaterializationError

console = Console()


@dataclass
class ProjectHandle:
    """Outcome of one materialization."""

    project_id: str
    root: str
    written: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    created: bool = False

    @property
    def files_written(self) -> int:
        return len(self.written)

    @property
    def complete(self) -> bool:
        """``True`` when every entry of the mapping was written."""
        return not self.failures

    def summary(self) -> str:
        """Return a human-readable summary of the handle."""
        action = "Created" if self.created else "Updated"
        lines = [f"{action} project {self.project_id}: {self.files_written} file(s) written"]
        for path, reason in list(self.failures.items())[:5]:
            lines.append(f"  - {path}: {reason[:200]}")
        return "\n".join(lines)


class ProjectMaterializer:
    """Write file mappings into a :class:`StorageBackend`.

    Args:
        backend: Where project trees live.
        locks: Per-project locks. Share one instance with the
            :class:`~genforge.storage.packager.ArchivePackager` so an archive
            is never built from a half-written project.
    """

    def __init__(self, backend: StorageBackend, locks: KeyedLocks | None = None) -> None:
        self.backend = backend
        self.locks = locks if locks is not None else KeyedLocks()

    async def _run(self, func: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _apply(self, handle: ProjectHandle, files: dict[str, str]) -> None:
        """Write each entry independently, recording failures on *handle*."""
        for path, content in files.items():
            try:
                written = self.backend.write_file(handle.project_id, path, content)
            except MaterializationError as exc:
                handle.failures[path] = exc.message
            except (OSError, ValueError) as exc:
                handle.failures[path] = f"{type(exc).__name__}: {exc}"
            else:
                handle.written.append(written)

    async def materialize(
        self,
        files: dict[str, str],
        project_id: str | None = None,
    ) -> ProjectHandle:
        """Create or upsert a project from *files*.

        Args:
            files: Validated ``{relative path: content}`` mapping.
            project_id: Existing or caller-chosen project id. ``None``
                generates a fresh timestamp-derived id.

        Returns:
            A :class:`ProjectHandle`. Entries that failed are listed in
            ``handle.failures``; the others stay written.

        Raises:
            MaterializationError: If the mapping is empty, the project id is
                invalid, a generated id collides with an existing project, or
                no entry at all could be written.
        """
        if not files:
            raise MaterializationError("Nothing to materialize: the file mapping is empty")

        generated = project_id is None
        if project_id is None:
            project_id = timestamp_id()
        check_project_id(project_id)

        async with self.locks.hold(project_id):
            try:
                created = await self._run(self.backend.create_project, project_id)
            except OSError as exc:
                raise MaterializationError(
                    f"Could not create project {project_id}: {exc}", project_id=project_id
                ) from exc
            if generated and not created:
                raise MaterializationError(
                    f"Generated project id {project_id} already exists", project_id=project_id
                )

            handle = ProjectHandle(
                project_id=project_id,
                root=self.backend.root_for(project_id),
                created=created,
            )
            await self._run(self._apply, handle, files)

        if not handle.written:
            raise MaterializationError(
                f"No files could be written to project {project_id}",
                project_id=project_id,
                failures=handle.failures,
            )

        if handle.complete:
            console.print(f"[green]{handle.summary()}[/green]")
        else:
            console.print(f"[yellow]{handle.summary()}[/yellow]")
        return handle

    async def write_file(self, project_id: str, path: str, content: str) -> str:
        """Write a single file into *project_id*, bypassing extraction.

        Returns:
            The normalized relative path that was written.

        Raises:
            UnsafePathError: If *project_id* or *path* is unsafe.
            MaterializationError: On I/O failure.
        """
        check_project_id(project_id)
        check_relative_path(project_id, path)
        async with self.locks.hold(project_id):
            handle = ProjectHandle(project_id=project_id, root=self.backend.root_for(project_id))
            await self._run(self._apply, handle, {path: content})

        if not handle.written:
            reason = handle.failures.get(path, "unknown error")
            raise MaterializationError(
                f"Could not write {path!r}: {reason}",
                project_id=project_id,
                failures=handle.failures,
            )
        console.print(f"[green]Updated:[/green] {handle.written[0]} in project {project_id}")
        return handle.written[0]

    async def read_project(self, project_id: str) -> dict[str, str]:
        """Return the project's files as ``{relative path: content}``.

        Raises:
            ProjectNotFound: If the project does not exist.
        """
        if not await self._run(self.backend.project_exists, project_id):
            raise ProjectNotFound(project_id)
        return await self._run(self.backend.read_files, project_id)

    async def project_exists(self, project_id: str) -> bool:
        return await self._run(self.backend.project_exists, project_id)

    async def list_projects(self) -> list[ProjectInfo]:
        return await self._run(self.backend.list_projects)
