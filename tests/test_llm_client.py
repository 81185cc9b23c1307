"""Unit tests for GeminiClient (genforge.llm_client).

Tests cover:
- GenerationResponse model
- GeminiClient.__init__
- Payload construction (roles, system instruction, temperature)
- Static helpers: _extract_text, _extract_finish_reason
- GeminiClient.generate (success, connect error, timeout, HTTP error,
  unexpected error, empty candidate)
- TextGenerator protocol conformance
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import httpx
import pytest

from genforge.llm_client import GeminiClient, GenerationResponse, TextGenerator


# ---------------------------------------------------------------------------
# GenerationResponse
# ---------------------------------------------------------------------------


class TestGenerationResponse:
    @pytest.mark.unit
    def test_defaults(self):
        resp = GenerationResponse()
        assert resp.text == ""
        assert resp.model == ""
        assert resp.duration_ms == 0.0
        assert resp.finish_reason is None
        assert resp.success is True
        assert resp.error is None

    @pytest.mark.unit
    def test_error_response(self):
        resp = GenerationResponse(success=False, error="Connection refused")
        assert resp.success is False
        assert resp.error == "Connection refused"


# ---------------------------------------------------------------------------
# GeminiClient.__init__
# ---------------------------------------------------------------------------


class TestGeminiClientInit:
    @pytest.mark.unit
    def test_defaults(self):
        client = GeminiClient(api_key="k")
        assert client.model == "gemini-2.5-flash"
        assert client.base_url == "https://generativelanguage.googleapis.com/v1beta"
        assert client.timeout == 120
        assert client.temperature is None

    @pytest.mark.unit
    def test_trailing_slash_stripped(self):
        client = GeminiClient(api_key="k", base_url="http://host:1234/v1beta/")
        assert client.base_url == "http://host:1234/v1beta"

    @pytest.mark.unit
    def test_satisfies_protocol(self):
        assert isinstance(GeminiClient(api_key="k"), TextGenerator)


# ---------------------------------------------------------------------------
# Payload & static helpers
# ---------------------------------------------------------------------------


class TestBuildPayload:
    @pytest.mark.unit
    def test_roles_mapped(self):
        client = GeminiClient(api_key="k")
        payload = client._build_payload(
            [
                {"role": "user", "text": "first"},
                {"role": "model", "text": "{}"},
                {"role": "system", "text": "odd"},
            ],
            system="",
        )
        roles = [item["role"] for item in payload["contents"]]
        assert roles == ["user", "model", "user"]
        assert payload["contents"][1]["parts"] == [{"text": "{}"}]
        assert "systemInstruction" not in payload
        assert "generationConfig" not in payload

    @pytest.mark.unit
    def test_system_and_temperature(self):
        client = GeminiClient(api_key="k", temperature=0.3)
        payload = client._build_payload([{"role": "user", "text": "hi"}], system="Only JSON")
        assert payload["systemInstruction"] == {"parts": [{"text": "Only JSON"}]}
        assert payload["generationConfig"] == {"temperature": 0.3}


class TestStaticHelpers:
    @pytest.mark.unit
    def test_extract_text_joins_parts(self, gemini_body):
        body = gemini_body("ignored")
        body["candidates"][0]["content"]["parts"] = [{"text": "{\"a\": "}, {"text": "\"b\"}"}]
        assert GeminiClient._extract_text(body) == '{"a": "b"}'

    @pytest.mark.unit
    def test_extract_text_no_candidates(self):
        assert GeminiClient._extract_text({}) == ""
        assert GeminiClient._extract_text({"candidates": []}) == ""

    @pytest.mark.unit
    def test_extract_finish_reason(self, gemini_body):
        assert GeminiClient._extract_finish_reason(gemini_body("x", "MAX_TOKENS")) == "MAX_TOKENS"

    @pytest.mark.unit
    def test_extract_block_reason(self):
        data = {"promptFeedback": {"blockReason": "SAFETY"}}
        assert GeminiClient._extract_finish_reason(data) == "SAFETY"


# ---------------------------------------------------------------------------
# GeminiClient.generate
# ---------------------------------------------------------------------------


class TestGeminiGenerate:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_generate(self, mock_gemini_client, gemini_body):
        mock_client = mock_gemini_client(gemini_body('{"index.html": "<h1>Hi</h1>"}'))

        with patch("httpx.AsyncClient", return_value=mock_client):
            client = GeminiClient(api_key="k")
            result = await client.generate([{"role": "user", "text": "landing page"}], system="JSON")

        assert result.success is True
        assert result.text == '{"index.html": "<h1>Hi</h1>"}'
        assert result.model == "gemini-2.5-flash"
        assert result.finish_reason == "STOP"
        assert result.duration_ms >= 0

        url = mock_client.post.call_args[0][0]
        payload = mock_client.post.call_args[1]["json"]
        assert url == "/models/gemini-2.5-flash:generateContent"
        assert payload["systemInstruction"]["parts"][0]["text"] == "JSON"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_api_key_sent_as_header(self, mock_gemini_client, gemini_body):
        mock_client = mock_gemini_client(gemini_body("{}"))

        with patch("httpx.AsyncClient", return_value=mock_client) as client_cls:
            await GeminiClient(api_key="secret").generate([{"role": "user", "text": "x"}])

        assert client_cls.call_args[1]["headers"] == {"x-goog-api-key": "secret"}

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_connect_error(self, mock_gemini_client):
        mock_client = mock_gemini_client(post_error=httpx.ConnectError("Connection refused"))

        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await GeminiClient(api_key="k").generate([{"role": "user", "text": "x"}])

        assert result.success is False
        assert "Cannot connect" in result.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout(self, mock_gemini_client):
        mock_client = mock_gemini_client(post_error=httpx.TimeoutException("timed out"))

        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await GeminiClient(api_key="k", timeout=30).generate(
                [{"role": "user", "text": "x"}]
            )

        assert result.success is False
        assert "timed out after 30s" in result.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_http_error(self, mock_gemini_client):
        request = httpx.Request("POST", "https://example.invalid/models/x:generateContent")
        response = httpx.Response(429, text="quota exceeded", request=request)
        mock_client = mock_gemini_client()
        mock_client.post.return_value.raise_for_status = MagicMock(
            side_effect=httpx.HTTPStatusError("429", request=request, response=response)
        )

        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await GeminiClient(api_key="k").generate([{"role": "user", "text": "x"}])

        assert result.success is False
        assert "HTTP 429" in result.error
        assert "quota exceeded" in result.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unexpected_error(self, mock_gemini_client):
        mock_client = mock_gemini_client(post_error=RuntimeError("kaboom"))

        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await GeminiClient(api_key="k").generate([{"role": "user", "text": "x"}])

        assert result.success is False
        assert "kaboom" in result.error

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_candidate_is_failure(self, mock_gemini_client):
        mock_client = mock_gemini_client({"promptFeedback": {"blockReason": "SAFETY"}})

        with patch("httpx.AsyncClient", return_value=mock_client):
            result = await GeminiClient(api_key="k").generate([{"role": "user", "text": "x"}])

        assert result.success is False
        assert result.finish_reason == "SAFETY"
        assert "no text" in result.error
