"""Prompt construction for project generation.

Holds the system instruction that pins the model to a single raw JSON
object, the per-turn user message templates, and the conversion of session
history into the role-tagged messages sent to the provider.
"""

from __future__ import annotations

import textwrap
from collections.abc import Sequence

from genforge.sessions import Message, Role

SYSTEM_PROMPT = textwrap.dedent("""\
    You are an expert code generator that outputs ONLY raw JSON.

    CRITICAL OUTPUT RULES - FOLLOW EXACTLY:
    1. Your ENTIRE response must be a single JSON object
    2. Start with { and end with }
    3. NO markdown code fences (```json or ```)
    4. NO explanatory text before or after the JSON
    5. NO escaped quotes in file content - use proper JSON string escaping only

    OUTPUT FORMAT (THIS IS THE ONLY VALID FORMAT):
    {
      "index.html": "<!DOCTYPE html>\\n<html>\\n<body>Hello</body>\\n</html>",
      "style.css": "body { margin: 0; }",
      "package.json": "{ \\"name\\": \\"myapp\\", \\"version\\": \\"1.0.0\\" }"
    }

    Keys are file paths relative to the project root, using forward slashes.
    Never use absolute paths or "..".

    For React projects, always include:
    - package.json (with React, ReactDOM, Vite)
    - index.html
    - vite.config.js
    - src/main.jsx
    - src/App.jsx
    - src/index.css
    - src/components/ (as needed)

    REMEMBER: Start with { and end with }. Nothing else. No text, no markdown, just JSON.
    """)

_GENERATE_SUFFIX = "REMEMBER: Output ONLY JSON. Start with { and end with }. NO markdown, NO text."

_CHAT_SUFFIX = "Output ONLY the updated/new files as JSON. Start with { and end with }."


def build_system_instruction(examples_text: str = "") -> str:
    """Return the system instruction, with few-shot examples appended if any."""
    if not examples_text:
        return SYSTEM_PROMPT
    return f"{SYSTEM_PROMPT}\nEXAMPLES:\n\n{examples_text}\n"


def generate_message(prompt: str) -> str:
    """User message for a fresh project."""
    return f"{prompt.strip()}\n\n{_GENERATE_SUFFIX}"


def chat_message(prompt: str) -> str:
    """User message asking for changes to an existing project."""
    return f"Modification: {prompt.strip()}\n\n{_CHAT_SUFFIX}"


def to_model_messages(history: Sequence[Message], user_message: str) -> list[dict[str, str]]:
    """Turn session history plus the new user message into provider messages.

    System messages stored in the history are not replayed; the system
    instruction travels separately.
    """
    messages = [
        {"role": message.role.value, "text": message.text}
        for message in history
        if message.role is not Role.SYSTEM
    ]
    messages.append({"role": Role.USER.value, "text": user_message})
    return messages
