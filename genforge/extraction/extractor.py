"""Recover a validated file mapping from raw model output.

The model is asked for a single JSON object ``{"path": "content", ...}`` but
routinely wraps it in prose or code fences, or escapes it one level too
many. :func:`extract_file_mapping` strips the noise, runs the recovery
chain from :mod:`genforge.extraction.strategies`, and validates the result
into a ``dict[str, str]`` whose keys are safe relative paths.

Typical usage::

    result = extract_file_mapping(raw_text)
    for path, content in result.files.items():
        ...
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from rich.console import Console

from .errors import EmptyOrUnsafeMapping, UnrecoverableMalformedOutput
from .paths import normalize_relative_path
from .strategies import (
    RECOVERY_CHAIN,
    Recovered,
    Strategy,
    slice_json_candidate,
    strip_code_fences,
)

console = Console()


@dataclass
class ExtractionResult:
    """A validated file mapping plus the story of how it was recovered."""

    files: dict[str, str]
    strategy: str
    warnings: list[str] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.files)

    def summary(self) -> str:
        """Return a one-line human-readable summary."""
        line = f"{self.file_count} file(s) via {self.strategy}"
        if self.warnings:
            line += f", {len(self.warnings)} warning(s)"
        return line


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def coerce_content(value: Any) -> str | None:
    """Return *value* as file text, or ``None`` when it has no text form.

    Strings pass through. Objects and arrays become indented JSON (a model
    that emits ``"package.json": {...}`` means the file's JSON text).
    Numbers and booleans become their JSON literal. ``null`` has no content.
    """
    if isinstance(value, str):
        return value
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2, ensure_ascii=False)
    if isinstance(value, (bool, int, float)):
        return json.dumps(value)
    return None


def validate_file_mapping(value: Any, raw: str = "") -> tuple[dict[str, str], list[str]]:
    """Turn a decoded JSON value into a safe file mapping.

    Entries with unsafe keys or without text content are dropped with a
    warning instead of failing the whole mapping.

    Args:
        value: The decoded JSON value.
        raw: Original model text, attached to the error for diagnostics.

    Returns:
        A ``(files, warnings)`` tuple.

    Raises:
        EmptyOrUnsafeMapping: If *value* is not an object, has no keys, or
            no entry survives the checks.
    """
    if not isinstance(value, dict):
        raise EmptyOrUnsafeMapping(
            f"expected a JSON object, got {type(value).__name__}", raw=raw
        )
    if not value:
        raise EmptyOrUnsafeMapping("the JSON object has no keys", raw=raw)

    files: dict[str, str] = {}
    warnings: list[str] = []
    for key, content in value.items():
        try:
            path = normalize_relative_path(key)
        except ValueError as exc:
            warnings.append(f"dropped {key!r}: {exc}")
            continue

        text = coerce_content(content)
        if text is None:
            warnings.append(f"dropped {key!r}: no text content")
            continue

        if path in files:
            warnings.append(f"{key!r} duplicates {path!r}; last value wins")
        elif path != key:
            warnings.append(f"normalized {key!r} to {path!r}")
        files[path] = text

    if not files:
        raise EmptyOrUnsafeMapping("no usable file entries", raw=raw, warnings=warnings)
    return files, warnings


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def run_recovery_chain(
    candidate: str,
    chain: tuple[tuple[str, Strategy], ...] = RECOVERY_CHAIN,
) -> tuple[Recovered | None, list[str]]:
    """Try each strategy in order until one decodes *candidate*.

    Returns:
        ``(recovered, attempted)`` where *attempted* lists the strategy
        names that were run, in order. *recovered* is ``None`` when they all
        failed.
    """
    attempted: list[str] = []
    for name, strategy in chain:
        attempted.append(name)
        recovered = strategy(candidate)
        if recovered is not None:
            return recovered, attempted
    return None, attempted


def extract_file_mapping(
    raw: str,
    chain: tuple[tuple[str, Strategy], ...] = RECOVERY_CHAIN,
) -> ExtractionResult:
    """Recover a validated ``{path: content}`` mapping from model output.

    Args:
        raw: The model's raw response text.
        chain: Ordered ``(name, strategy)`` pairs to try.

    Returns:
        An :class:`ExtractionResult`.

    Raises:
        NoJsonBoundaryFound: There is no ``{``/``}`` pair in the text.
        UnrecoverableMalformedOutput: No strategy produced valid JSON.
        EmptyOrUnsafeMapping: Valid JSON, but no usable file entries.
    """
    text = strip_code_fences(raw.strip())
    candidate = slice_json_candidate(text)

    recovered, attempted = run_recovery_chain(candidate, chain)
    if recovered is None:
        console.print(
            f"[red]All {len(attempted)} JSON recovery strategies failed[/red] "
            f"({', '.join(attempted)})"
        )
        raise UnrecoverableMalformedOutput(raw, attempts=attempted)

    if len(attempted) > 1:
        console.print(
            f"[yellow]Direct parse failed; recovered JSON via[/yellow] {recovered.strategy}"
        )

    files, warnings = validate_file_mapping(recovered.value, raw=raw)
    warnings = recovered.notes + warnings
    for warning in warnings:
        console.print(f"  [yellow]![/yellow] {warning}")

    return ExtractionResult(files=files, strategy=recovered.strategy, warnings=warnings)
