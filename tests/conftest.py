"""Shared pytest fixtures for the GenForge test suite.

Provides reusable fixtures for:
- Configuration rooted in a temporary data directory
- A scripted text generator standing in for the model provider
- In-memory and on-disk storage backends
- A fully wired pipeline and FastAPI test client
- Realistic raw model outputs (clean, fenced, prose-wrapped, broken)
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from genforge.config import Config
from genforge.llm_client import GenerationResponse
from genforge.pipeline import GenerationPipeline
from genforge.server import create_app
from genforge.sessions import InMemorySessionStore
from genforge.storage import InMemoryBackend, LocalDiskBackend


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Temporary data root (projects/, archives/, debug/ live below it)."""
    return tmp_path / "data"


@pytest.fixture
def config(data_dir: Path) -> Config:
    """Config with a dummy API key and a temporary data root."""
    return Config(api_key="test-key", data_dir=data_dir)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove every environment variable ``Config.from_env`` reads."""
    for name in (
        "GOOGLE_API_KEY",
        "GENFORGE_DATA_DIR",
        "GENFORGE_DATASET_DIR",
        "GENFORGE_FEW_SHOT_LIMIT",
        "GENFORGE_MAX_HISTORY",
        "GENFORGE_DEBUG",
        "GENFORGE_MODEL",
        "GENFORGE_MODEL_URL",
        "GENFORGE_MODEL_TIMEOUT",
        "GENFORGE_TEMPERATURE",
        "GENFORGE_HOST",
        "PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


# ---------------------------------------------------------------------------
# Scripted generator
# ---------------------------------------------------------------------------

class FakeGenerator:
    """Returns queued texts in order and records every call it receives."""

    def __init__(self) -> None:
        self.responses: list[str | GenerationResponse] = []
        self.calls: list[dict[str, Any]] = []

    def queue(self, *items: str | GenerationResponse) -> None:
        self.responses.extend(items)

    async def generate(
        self,
        messages: Sequence[dict[str, str]],
        system: str = "",
    ) -> GenerationResponse:
        self.calls.append({"messages": [dict(m) for m in messages], "system": system})
        if not self.responses:
            return GenerationResponse(model="fake", success=False, error="No response queued")
        item = self.responses.pop(0)
        if isinstance(item, GenerationResponse):
            return item
        return GenerationResponse(text=item, model="fake", duration_ms=12.5, finish_reason="STOP")


@pytest.fixture
def fake_generator() -> FakeGenerator:
    """A text generator whose answers are queued by the test."""
    return FakeGenerator()


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

@pytest.fixture
def memory_backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def disk_backend(tmp_path: Path) -> LocalDiskBackend:
    """Disk backend rooted in a temporary ``projects`` directory."""
    return LocalDiskBackend(tmp_path / "projects")


# ---------------------------------------------------------------------------
# Pipeline & HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def pipeline(
    config: Config,
    fake_generator: FakeGenerator,
    session_store: InMemorySessionStore,
    memory_backend: InMemoryBackend,
) -> GenerationPipeline:
    """Pipeline wired to the fake generator and an in-memory project store.

    Archives and diagnostics still go to the temporary data directory.
    """
    return GenerationPipeline(
        config,
        fake_generator,
        sessions=session_store,
        backend=memory_backend,
    )


@pytest.fixture
def client(pipeline: GenerationPipeline) -> TestClient:
    """FastAPI test client around :func:`pipeline`."""
    return TestClient(create_app(pipeline))


# ---------------------------------------------------------------------------
# Sample model outputs
# ---------------------------------------------------------------------------

@pytest.fixture
def landing_page_files() -> dict[str, str]:
    """A small, realistic generated project."""
    return {
        "index.html": (
            "<!DOCTYPE html>\n<html>\n<head><link rel=\"stylesheet\" href=\"style.css\"></head>\n"
            "<body><h1>Bakery</h1><script src=\"src/main.js\"></script></body>\n</html>"
        ),
        "style.css": "body { margin: 0; font-family: sans-serif; }",
        "src/main.js": "document.querySelector('h1').textContent += '!';",
        "package.json": json.dumps({"name": "bakery", "version": "1.0.0"}),
    }


@pytest.fixture
def landing_page_raw(landing_page_files: dict[str, str]) -> str:
    """The project as a clean JSON answer."""
    return json.dumps(landing_page_files)


@pytest.fixture
def fenced_raw(landing_page_files: dict[str, str]) -> str:
    """The project wrapped in prose and a ```json fence."""
    return (
        "Sure! Here is your landing page:\n\n```json\n"
        + json.dumps(landing_page_files, indent=2)
        + "\n```\n\nLet me know if you want any changes."
    )


# ---------------------------------------------------------------------------
# Mock httpx
# ---------------------------------------------------------------------------

def _make_gemini_response(text: str, finish_reason: str = "STOP") -> dict[str, Any]:
    """Build a realistic ``generateContent`` response body."""
    return {
        "candidates": [
            {
                "content": {"parts": [{"text": text}], "role": "model"},
                "finishReason": finish_reason,
                "index": 0,
            }
        ],
        "usageMetadata": {"promptTokenCount": 120, "candidatesTokenCount": 48},
        "modelVersion": "gemini-2.5-flash",
    }


@pytest.fixture
def mock_gemini_client():
    """Build a mocked ``httpx.AsyncClient`` returning *body*.

    Usage:
        def test_something(mock_gemini_client):
            mock_client = mock_gemini_client(_make_gemini_response("{}"))
            with patch("httpx.AsyncClient", return_value=mock_client):
                ...
    """

    def _factory(body: dict[str, Any] | None = None, post_error: Exception | None = None) -> AsyncMock:
        mock_response = MagicMock()
        mock_response.status_code = 200
        mock_response.json.return_value = body if body is not None else _make_gemini_response("{}")
        mock_response.raise_for_status = MagicMock()

        mock_client = AsyncMock()
        if post_error is not None:
            mock_client.post = AsyncMock(side_effect=post_error)
        else:
            mock_client.post = AsyncMock(return_value=mock_response)
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=False)
        return mock_client

    return _factory


@pytest.fixture
def gemini_body():
    """Factory for ``generateContent`` response bodies."""
    return _make_gemini_response
