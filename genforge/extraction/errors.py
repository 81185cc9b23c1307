"""Typed failures raised while recovering a file mapping from model text."""

from __future__ import annotations

from genforge.errors import GenForgeError
from genforge.utils import truncate

PREVIEW_CHARS = 500


class ExtractionError(GenForgeError):
    """Base class for extraction failures.

    Attributes:
        preview: The first :data:`PREVIEW_CHARS` characters of the raw model
            output, kept for diagnostics.
        diagnostics_path: Where the full raw output was saved, once the
            pipeline has persisted it.
    """

    code = "extraction_failed"

    def __init__(self, message: str, raw: str = "", hint: str | None = None) -> None:
        self.preview = truncate(raw, PREVIEW_CHARS)
        self.diagnostics_path: str | None = None
        super().__init__(message, hint=hint)


class NoJsonBoundaryFound(ExtractionError):
    """The text holds no ``{`` ... ``}`` candidate at all."""

    code = "no_json_boundary"

    def __init__(self, raw: str = "") -> None:
        super().__init__(
            "No JSON object found in model response",
            raw=raw,
            hint="The model answered in prose only. Try rephrasing the prompt.",
        )


class UnrecoverableMalformedOutput(ExtractionError):
    """Every recovery strategy failed to produce valid JSON."""

    code = "malformed_output"

    def __init__(self, raw: str = "", attempts: list[str] | None = None) -> None:
        self.attempts = attempts or []
        super().__init__(
            "AI returned invalid JSON",
            raw=raw,
            hint="The model might be adding explanatory text. Check the diagnostics file.",
        )


class EmptyOrUnsafeMapping(ExtractionError):
    """The JSON parsed but holds no usable file entries."""

    code = "empty_or_unsafe_mapping"

    def __init__(self, reason: str, raw: str = "", warnings: list[str] | None = None) -> None:
        self.warnings = warnings or []
        super().__init__(f"Parsed JSON is empty or invalid: {reason}", raw=raw)
