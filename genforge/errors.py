"""Base exception and request-level errors for GenForge.

Every error raised across a component boundary derives from
:class:`GenForgeError` and carries a stable ``code`` that the HTTP layer
returns to callers alongside the message and an optional ``hint``.
"""

from __future__ import annotations

from typing import Any


class GenForgeError(Exception):
    """Base class for all typed GenForge failures."""

    code = "genforge_error"

    def __init__(self, message: str, hint: str | None = None) -> None:
        self.message = message
        self.hint = hint
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Return the ``{error, code, hint?}`` part of a failure body."""
        body: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.hint:
            body["hint"] = self.hint
        return body


class ConfigError(GenForgeError):
    """Raised when the process cannot start with the given configuration."""

    code = "config_error"


class MissingRequiredField(GenForgeError):
    """Raised when a request lacks one or more mandatory fields."""

    code = "missing_required_field"

    def __init__(self, fields: list[str]) -> None:
        self.fields = fields
        super().__init__(f"Missing required field(s): {', '.join(fields)}")


class ProjectNotFound(GenForgeError):
    """Raised when a project identifier does not exist in the store."""

    code = "project_not_found"

    def __init__(self, project_id: str) -> None:
        self.project_id = project_id
        super().__init__("Project not found")


class ModelCallError(GenForgeError):
    """Raised when the text-generation provider did not return any text."""

    code = "model_call_failed"
