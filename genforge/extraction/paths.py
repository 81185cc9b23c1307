"""Path-safety normalization for file mapping keys.

Model output names files with whatever separators and prefixes the model
felt like using. Before a key may be written anywhere it is reduced to a
canonical relative POSIX path that cannot climb out of the project root.
"""

from __future__ import annotations

import re

_DRIVE_RE = re.compile(r"^[A-Za-z]:")


def normalize_relative_path(key: str) -> str:
    """Return the canonical relative form of *key*.

    * Backslashes become forward slashes.
    * Surrounding whitespace, leading slashes and drive letters are removed.
    * ``.`` and empty segments collapse.

    Examples::

        normalize_relative_path("./src//App.jsx")   -> "src/App.jsx"
        normalize_relative_path("/etc/passwd")      -> "etc/passwd"
        normalize_relative_path("C:/app/x.js")      -> "app/x.js"

    Raises:
        ValueError: If the key is empty after normalization or contains a
            ``..`` segment.
    """
    if not isinstance(key, str):
        raise ValueError(f"path must be a string, got {type(key).__name__}")

    cleaned = key.strip().replace("\\", "/")
    if "\x00" in cleaned:
        raise ValueError("path contains a NUL byte")
    cleaned = _DRIVE_RE.sub("", cleaned)

    segments: list[str] = []
    for segment in cleaned.split("/"):
        segment = segment.strip()
        if segment in ("", "."):
            continue
        if segment == "..":
            raise ValueError("path contains a '..' segment")
        segments.append(segment)

    if not segments:
        raise ValueError("path is empty")
    return "/".join(segments)
