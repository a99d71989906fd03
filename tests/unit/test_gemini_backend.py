"""Unit tests for GeminiTranscriptionBackend against a local aiohttp server."""

import re
import asyncio
from unittest.mock import patch

import pytest
from aiohttp import web
from aiohttp import test_utils

from voicecapture.config import ApiCredentials
from voicecapture.errors import MalformedResponseError
from voicecapture.transcription.gemini_backend import (
    GeminiTranscriptionBackend,
    NO_CANDIDATES,
    SUCCESS_CONFIDENCE,
)

ENDPOINT_PATH = "/v1beta/models/gemini-test:generateContent"
PAYLOAD = "UklGRiQAAABXQVZF"
FORMAT = "PCM 16-bit mono 16000Hz"


def candidates(*texts):
    return {"candidates": [{"content": {"parts": [{"text": t} for t in texts]}}]}


def run_backend(handler, credentials=None, **backend_kwargs):
    """Serve ``handler`` locally, transcribe once and return (result, requests)."""
    requests = []
    credentials = credentials or ApiCredentials(api_key="test-key")

    async def recording_handler(request):
        requests.append({"headers": dict(request.headers), "body": await request.json()})
        return await handler(request)

    async def scenario():
        app = web.Application()
        app.router.add_post(ENDPOINT_PATH, recording_handler)
        async with test_utils.TestServer(app) as server:
            backend = GeminiTranscriptionBackend(
                credentials, endpoint=str(server.make_url(ENDPOINT_PATH)), **backend_kwargs
            )
            try:
                return await backend.transcribe(PAYLOAD, FORMAT)
            finally:
                await backend.close()

    return asyncio.run(scenario()), requests


@pytest.mark.unit
class TestGeminiTranscriptionBackend:

    def test_default_endpoint(self):
        backend = GeminiTranscriptionBackend(ApiCredentials(api_key="k"))

        assert backend.endpoint == (
            "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-flash:generateContent"
        )
        assert backend.timeout.total == 90.0
        assert backend.timeout.connect == 30.0

    def test_is_ready(self):
        assert GeminiTranscriptionBackend(ApiCredentials(api_key="k")).is_ready()
        assert not GeminiTranscriptionBackend(ApiCredentials()).is_ready()

    def test_successful_transcription(self):
        async def handler(request):
            return web.json_response(candidates(" hello ", "world \n"))

        result, requests = run_backend(handler)

        assert result.success
        assert result.text == "hello world"
        assert result.confidence == SUCCESS_CONFIDENCE
        assert result.method == "Gemini Direct API"
        assert result.error is None

        assert len(requests) == 1
        assert requests[0]["headers"]["x-goog-api-key"] == "test-key"
        body = requests[0]["body"]
        parts = body["contents"][0]["parts"]
        assert FORMAT in parts[0]["text"]
        assert parts[1]["inline_data"] == {"mime_type": "audio/wav", "data": PAYLOAD}
        assert body["generationConfig"] == {
            "temperature": 0.1,
            "topK": 32,
            "topP": 0.95,
            "maxOutputTokens": 1024,
        }

    def test_empty_transcript_is_success_with_zero_confidence(self):
        async def handler(request):
            return web.json_response(candidates(""))

        result, _ = run_backend(handler)

        assert result.success
        assert result.text == ""
        assert result.confidence == 0.0

    def test_http_error(self):
        async def handler(request):
            return web.Response(status=500, text="boom")

        result, _ = run_backend(handler)

        assert result.success is False
        assert re.search(r"network|HTTP", result.error, re.IGNORECASE)
        assert "500" in result.error

    def test_no_candidates(self):
        async def handler(request):
            return web.json_response({"candidates": []})

        result, _ = run_backend(handler)

        assert result.success is False
        assert result.error == NO_CANDIDATES

    def test_malformed_json(self):
        async def handler(request):
            return web.Response(text="<html>not json</html>", content_type="text/html")

        result, _ = run_backend(handler)

        assert result.success is False
        assert result.error.startswith("Invalid response format")

    def test_missing_credentials_makes_no_request(self):
        async def handler(request):
            return web.json_response(candidates("should not be reached"))

        result, requests = run_backend(handler, credentials=ApiCredentials())

        assert result.success is False
        assert result.error.startswith("Missing credentials")
        assert requests == []

    def test_timeout(self):
        async def handler(request):
            await asyncio.sleep(0.5)
            return web.json_response(candidates("late"))

        result, _ = run_backend(handler, timeout_seconds=0.1)

        assert result.success is False
        assert result.error.startswith("Network error")

    def test_connection_refused(self):
        backend = GeminiTranscriptionBackend(
            ApiCredentials(api_key="k"), endpoint="http://127.0.0.1:1/generate", timeout_seconds=5
        )

        async def scenario():
            try:
                return await backend.transcribe(PAYLOAD, FORMAT)
            finally:
                await backend.close()

        result = asyncio.run(scenario())

        assert result.success is False
        assert result.error.startswith("Network error")

    def test_unexpected_error(self):
        async def handler(request):
            return web.json_response(candidates("hi"))

        with patch.object(GeminiTranscriptionBackend, "parse_response", side_effect=RuntimeError("boom")):
            result, _ = run_backend(handler)

        assert result.success is False
        assert result.error == "Unexpected error: boom"


@pytest.mark.unit
class TestParseResponse:

    def test_joins_parts(self):
        text = '{"candidates": [{"content": {"parts": [{"text": "a"}, {"text": "b"}]}}]}'
        assert GeminiTranscriptionBackend.parse_response(text) == "ab"

    def test_missing_content(self):
        assert GeminiTranscriptionBackend.parse_response('{"candidates": [{}]}') == ""

    def test_missing_candidates(self):
        assert GeminiTranscriptionBackend.parse_response('{}') is None

    @pytest.mark.parametrize("body", [
        "not json",
        "[1, 2]",
        '{"candidates": "nope"}',
        '{"candidates": [{"content": "nope"}]}',
        '{"candidates": [{"content": {"parts": "nope"}}]}',
    ])
    def test_malformed(self, body):
        with pytest.raises(MalformedResponseError):
            GeminiTranscriptionBackend.parse_response(body)
