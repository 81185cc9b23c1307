"""Recovery strategies for the JSON object embedded in model output.

Each strategy is a pure function ``candidate -> Recovered | None``: it gets
the text sliced between the first ``{`` and the last ``}`` and either
returns the decoded value or ``None`` when it cannot help. The extractor
tries them in :data:`RECOVERY_CHAIN` order and stops at the first hit, so a
later, more aggressive repair never touches output an earlier one already
decoded.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import NoJsonBoundaryFound


@dataclass
class Recovered:
    """A successfully decoded JSON value and how it was obtained."""

    value: Any
    strategy: str
    notes: list[str] = field(default_factory=list)


Strategy = Callable[[str], Recovered | None]


# ---------------------------------------------------------------------------
# Pre-processing
# ---------------------------------------------------------------------------

# A fence is only a delimiter when a real line break (or the end of the text)
# follows it. Inside a JSON string a newline is always escaped, so fences that
# belong to file content (README examples and the like) are left alone.
_FENCE_RE = re.compile(r"```[\w.+-]*[ \t]*(?:\r?\n|\Z)")


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence delimiters and their language tags.

    Examples::

        strip_code_fences("```json\\n{}\\n```") -> "{}\\n"
    """
    return _FENCE_RE.sub("", text)


def slice_json_candidate(text: str) -> str:
    """Return the text from the first ``{`` to the last ``}`` inclusive.

    Raises:
        NoJsonBoundaryFound: If there is no opening or closing brace, or the
            last ``}`` comes before the first ``{``.
    """
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last == -1 or last < first:
        raise NoJsonBoundaryFound(text)
    return text[first : last + 1]


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def parse_direct(candidate: str) -> Recovered | None:
    """Strict ``json.loads`` of the candidate."""
    try:
        return Recovered(json.loads(candidate), "direct")
    except json.JSONDecodeError:
        return None


def parse_nested_strings(candidate: str) -> Recovered | None:
    """Parse the candidate as a flat object and flag JSON-looking values.

    String values that start with ``{`` or ``[`` and parse as JSON are kept
    exactly as they are (``package.json`` is legitimately JSON text); they
    are only reported in the notes so double-encoding shows up in the logs.
    """
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError:
        return None

    notes: list[str] = []
    if isinstance(parsed, dict):
        for key, value in parsed.items():
            if not isinstance(value, str) or value[:1] not in ("{", "["):
                continue
            try:
                json.loads(value)
            except json.JSONDecodeError:
                continue
            notes.append(f"value for {key!r} holds embedded JSON; kept as text")
    return Recovered(parsed, "nested_string", notes)


_ESCAPED_OBJECT_RE = re.compile(
    r'"(?P<key>[^"\\]+)"\s*:\s*"(?P<value>\{(?:[^{}\\]|\\.)*\})"(?=\s*[,}])'
)

# One escape level too many inside a value: ``\\"`` stands for ``\"``.
_SURPLUS_ESCAPES = (
    ('\\\\"', '\\"'),
    ("\\\\n", "\\n"),
    ("\\\\t", "\\t"),
    ("\\\\r", "\\r"),
)


def _is_json(text: str) -> bool:
    try:
        json.loads(text)
    except json.JSONDecodeError:
        return False
    return True


def _unescape_once(raw_value: str) -> str | None:
    """Return the intended text of an over-escaped JSON value, or ``None``.

    The first candidate that is itself valid JSON wins:

    1. the raw value decoded as a JSON string literal (verbatim when it is
       not one);
    2. that text with a single level of ``\\"`` escaping removed;
    3. the raw value with its surplus escape level collapsed
       (``\\\\"`` to ``\\"``, likewise ``\\n``, ``\\t``, ``\\r``), then decoded
       as a JSON string literal.
    """
    try:
        decoded = json.loads(f'"{raw_value}"')
    except json.JSONDecodeError:
        decoded = raw_value

    if _is_json(decoded):
        return decoded
    unescaped = decoded.replace('\\"', '"')
    if _is_json(unescaped):
        return unescaped

    collapsed = raw_value
    for old, new in _SURPLUS_ESCAPES:
        collapsed = collapsed.replace(old, new)
    try:
        literal = json.loads(f'"{collapsed}"', strict=False)
    except json.JSONDecodeError:
        return None
    return literal if _is_json(literal) else None


def parse_targeted_unescape(candidate: str) -> Recovered | None:
    """Repair ``"file": "{\\\\"k\\\\": ...}"`` values one at a time.

    Only values whose unescaped form is valid JSON are replaced, each with
    the properly encoded string of that text; every other substring stays
    untouched. The whole object is parsed again afterwards.
    """
    repaired_keys: list[str] = []

    def _replace(match: re.Match[str]) -> str:
        fixed = _unescape_once(match.group("value"))
        if fixed is None:
            return match.group(0)
        repaired_keys.append(match.group("key"))
        return f'"{match.group("key")}": {json.dumps(fixed, ensure_ascii=False)}'

    repaired = _ESCAPED_OBJECT_RE.sub(_replace, candidate)
    if not repaired_keys:
        return None

    try:
        value = json.loads(repaired)
    except json.JSONDecodeError:
        return None
    notes = [f"unescaped embedded JSON for {key!r}" for key in repaired_keys]
    return Recovered(value, "targeted_unescape", notes)


_BRUTE_FORCE_REPLACEMENTS = (
    ('\\\\"', '"'),
    ("\\\\n", "\\n"),
    ("\\\\t", "\\t"),
    ("\\\\r", "\\r"),
)


def parse_brute_force(candidate: str) -> Recovered | None:
    """Collapse doubled escape sequences everywhere, then parse.

    The final parse tolerates raw control characters inside strings, which
    models emit when they forget to escape newlines.
    """
    repaired = candidate
    for old, new in _BRUTE_FORCE_REPLACEMENTS:
        repaired = repaired.replace(old, new)
    try:
        return Recovered(json.loads(repaired, strict=False), "brute_force")
    except json.JSONDecodeError:
        return None


RECOVERY_CHAIN: tuple[tuple[str, Strategy], ...] = (
    ("direct", parse_direct),
    ("nested_string", parse_nested_strings),
    ("targeted_unescape", parse_targeted_unescape),
    ("brute_force", parse_brute_force),
)
