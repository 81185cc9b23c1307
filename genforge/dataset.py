"""Few-shot example dataset.

The dataset directory holds JSON files, each containing a list of
``{"user": ..., "assistant": ...}`` pairs. The first few pairs are rendered
into the system instruction to show the model the expected output shape.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console

from genforge.utils import load_json

console = Console()


@dataclass(frozen=True)
class Example:
    """One user request and the model answer it should produce."""

    user: str
    assistant: str


def load_dataset(dataset_dir: str | Path | None) -> list[Example]:
    """Load every example pair from ``*.json`` files in *dataset_dir*.

    Files are read in name order. A missing directory yields an empty list;
    a file that is not valid JSON, or items without both ``user`` and
    ``assistant`` strings, are skipped with a warning.
    """
    if dataset_dir is None:
        return []
    directory = Path(dataset_dir)
    if not directory.is_dir():
        console.print(f"[yellow]Dataset directory not found:[/yellow] {directory}")
        return []

    examples: list[Example] = []
    for path in sorted(directory.glob("*.json")):
        try:
            data = load_json(path)
        except (OSError, json.JSONDecodeError) as exc:
            console.print(f"[yellow]Skipping dataset file {path.name}:[/yellow] {exc}")
            continue

        items = data if isinstance(data, list) else [data]
        skipped = 0
        for item in items:
            if (
                isinstance(item, dict)
                and isinstance(item.get("user"), str)
                and isinstance(item.get("assistant"), str)
            ):
                examples.append(Example(user=item["user"], assistant=item["assistant"]))
            else:
                skipped += 1
        if skipped:
            console.print(f"[yellow]Skipped {skipped} malformed item(s) in {path.name}[/yellow]")

    console.print(f"[cyan]Loaded dataset items:[/cyan] {len(examples)}")
    return examples


def render_examples(examples: list[Example], limit: int = 30) -> str:
    """Render the first *limit* examples as ``User: ...`` / ``Assistant: ...`` blocks."""
    return "\n\n".join(
        f"User: {example.user}\nAssistant: {example.assistant}"
        for example in examples[:limit]
    )
