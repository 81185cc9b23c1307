"""Typed failures raised by the project store and the archive packager."""

from __future__ import annotations

from typing import Any

from genforge.errors import GenForgeError


class MaterializationError(GenForgeError):
    """Writing a file mapping into the project store failed.

    Attributes:
        project_id: The project being written, when known.
        failures: ``{path: reason}`` for every entry that could not be written.
    """

    code = "materialization_failed"

    def __init__(
        self,
        message: str,
        project_id: str | None = None,
        failures: dict[str, str] | None = None,
    ) -> None:
        self.project_id = project_id
        self.failures = failures or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        if self.failures:
            body["failures"] = self.failures
        return body


class UnsafePathError(MaterializationError):
    """A path would resolve outside its project root."""

    code = "unsafe_path"

    def __init__(self, path: str, reason: str, project_id: str | None = None) -> None:
        self.path = path
        super().__init__(f"Unsafe path {path!r}: {reason}", project_id=project_id)


class PackagingError(GenForgeError):
    """Creating a project archive failed. The project itself is unaffected."""

    code = "packaging_failed"

    def __init__(self, message: str, project_id: str | None = None) -> None:
        self.project_id = project_id
        super().__init__(message)
