"""Async client for the Gemini ``generateContent`` REST API.

Wraps ``POST /models/{model}:generateContent`` with proper timeout handling
and a structured response, so callers never see raw HTTP exceptions. The
pipeline depends only on the :class:`TextGenerator` protocol; tests and
alternative providers plug in there.

Typical usage::

    client = GeminiClient(api_key="...")
    resp = await client.generate(
        [{"role": "user", "text": "Create a landing page"}],
        system="Output only JSON",
    )
    if resp.success:
        print(resp.text)
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, Field


class GenerationResponse(BaseModel):
    """Structured response from a text-generation call."""

    text: str = Field(default="", description="Generated text")
    model: str = Field(default="", description="Model that produced the response")
    duration_ms: float = Field(default=0.0, description="Wall-clock request time in ms")
    finish_reason: str | None = Field(default=None, description="Provider finish reason")
    success: bool = Field(default=True, description="Whether the request succeeded")
    error: str | None = Field(default=None, description="Error message on failure")


@runtime_checkable
class TextGenerator(Protocol):
    async def generate(
        self,
        messages: Sequence[dict[str, str]],
        system: str = "",
    ) -> GenerationResponse: ...


class GeminiClient:
    """Async client for the Gemini REST API.

    Uses a fresh ``httpx.AsyncClient`` per call so the client holds no
    connection state between requests.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: int = 120,
        temperature: float | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.temperature = temperature

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        """Return a fresh ``AsyncClient`` configured with our base URL and timeout."""
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={"x-goog-api-key": self.api_key},
        )

    def _build_payload(self, messages: Sequence[dict[str, str]], system: str) -> dict[str, Any]:
        """Translate role-tagged messages into a ``generateContent`` body.

        Gemini only knows the ``user`` and ``model`` roles; anything else is
        sent as ``user``.
        """
        contents = [
            {
                "role": "model" if message.get("role") == "model" else "user",
                "parts": [{"text": message.get("text", "")}],
            }
            for message in messages
        ]
        payload: dict[str, Any] = {"contents": contents}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        if self.temperature is not None:
            payload["generationConfig"] = {"temperature": self.temperature}
        return payload

    @staticmethod
    def _extract_text(data: dict) -> str:
        """Concatenate the text parts of the first candidate."""
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    @staticmethod
    def _extract_finish_reason(data: dict) -> str | None:
        candidates = data.get("candidates") or []
        if candidates:
            return candidates[0].get("finishReason")
        return (data.get("promptFeedback") or {}).get("blockReason")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        messages: Sequence[dict[str, str]],
        system: str = "",
    ) -> GenerationResponse:
        """Generate text from a conversation.

        Args:
            messages: Ordered ``{"role": ..., "text": ...}`` dicts.
            system: Optional system instruction.

        Returns:
            A :class:`GenerationResponse` with the generated text or an error.
        """
        payload = self._build_payload(messages, system)
        start = time.monotonic()

        try:
            async with self._client() as client:
                response = await client.post(f"/models/{self.model}:generateContent", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.ConnectError:
            return GenerationResponse(
                model=self.model,
                success=False,
                error=f"Cannot connect to the model API at {self.base_url}.",
            )
        except httpx.TimeoutException:
            return GenerationResponse(
                model=self.model,
                success=False,
                error=f"Request to the model API timed out after {self.timeout}s.",
            )
        except httpx.HTTPStatusError as exc:
            return GenerationResponse(
                model=self.model,
                success=False,
                error=f"Model API returned HTTP {exc.response.status_code}: {exc.response.text[:500]}",
            )
        except Exception as exc:  # noqa: BLE001
            return GenerationResponse(
                model=self.model,
                success=False,
                error=f"Unexpected error during model call: {exc}",
            )

        duration_ms = (time.monotonic() - start) * 1000.0
        text = self._extract_text(data)
        finish_reason = self._extract_finish_reason(data)
        if not text:
            return GenerationResponse(
                model=data.get("modelVersion", self.model),
                duration_ms=duration_ms,
                finish_reason=finish_reason,
                success=False,
                error=f"Model returned no text (finish reason: {finish_reason or 'unknown'})",
            )

        return GenerationResponse(
            text=text,
            model=data.get("modelVersion", self.model),
            duration_ms=duration_ms,
            finish_reason=finish_reason,
            success=True,
        )
