"""Project store: materialization of file mappings and archive packaging.

Usage::

    from genforge.storage import ArchivePackager, LocalDiskBackend, ProjectMaterializer
    from genforge.utils import KeyedLocks

    backend = LocalDiskBackend("data/projects")
    locks = KeyedLocks()
    materializer = ProjectMaterializer(backend, locks)
    packager = ArchivePackager(backend, "data/archives", locks)

    handle = await materializer.materialize({"index.html": "<h1>Hi</h1>"})
    archive = await packager.pack(handle.project_id)
"""

from genforge.storage.backends import (
    InMemoryBackend,
    LocalDiskBackend,
    ProjectInfo,
    StorageBackend,
)
from genforge.storage.errors import MaterializationError, PackagingError, UnsafePathError
from genforge.storage.materializer import ProjectHandle, ProjectMaterializer
from genforge.storage.packager import ArchiveHandle, ArchivePackager

__all__ = [
    "StorageBackend",
    "LocalDiskBackend",
    "InMemoryBackend",
    "ProjectInfo",
    "ProjectMaterializer",
    "ProjectHandle",
    "ArchivePackager",
    "ArchiveHandle",
    "MaterializationError",
    "PackagingError",
    "UnsafePathError",
]
