"""Structured-output recovery for model responses.

Recovers a ``{relative path: file content}`` mapping from untrusted model
text, tolerating prose, code fences and over-escaped values.

Usage::

    from genforge.extraction import extract_file_mapping, ExtractionError

    try:
        result = extract_file_mapping(raw_text)
    except ExtractionError as exc:
        print(exc.code, exc.preview)
    else:
        print(result.files, result.strategy, result.warnings)
"""

from genforge.extraction.errors import (
    EmptyOrUnsafeMapping,
    ExtractionError,
    NoJsonBoundaryFound,
    UnrecoverableMalformedOutput,
)
from genforge.extraction.extractor import (
    ExtractionResult,
    extract_file_mapping,
    validate_file_mapping,
)
from genforge.extraction.paths import normalize_relative_path

__all__ = [
    "extract_file_mapping",
    "validate_file_mapping",
    "normalize_relative_path",
    "ExtractionResult",
    "ExtractionError",
    "NoJsonBoundaryFound",
    "UnrecoverableMalformedOutput",
    "EmptyOrUnsafeMapping",
]
