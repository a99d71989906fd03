"""Gemini REST transcription backend."""

import json
import time
import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from .base import AbstractTranscriptionBackend
from ..config import ApiCredentials
from ..errors import (
    TranscriptionError,
    NetworkError,
    MalformedResponseError,
    MissingCredentialsError,
)
from ..models.transcription import TranscriptionResult

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
SUCCESS_CONFIDENCE = 0.8
NO_CANDIDATES = "no transcription candidates"


class GeminiTranscriptionBackend(AbstractTranscriptionBackend):
    """Transcribes utterances with the Gemini ``generateContent`` endpoint."""

    method_name = "Gemini Direct API"

    def __init__(self,
                 credentials: ApiCredentials,
                 model: str = "gemini-2.5-flash",
                 endpoint: Optional[str] = None,
                 timeout_seconds: float = 90.0,
                 connect_timeout_seconds: float = 30.0):
        """Initialize Gemini backend.

        Args:
            credentials: API credentials; a missing key is reported per request
            model: Gemini model name
            endpoint: Full URL override (tests, proxies)
            timeout_seconds: Total budget for connect, write and read
            connect_timeout_seconds: Budget for establishing the connection
        """
        self.credentials = credentials
        self.model = model
        self.endpoint = endpoint or f"{GEMINI_API_BASE}/{model}:generateContent"
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds,
                                             connect=min(connect_timeout_seconds, timeout_seconds))
        self._session: Optional[aiohttp.ClientSession] = None
        self._session_loop: Optional[asyncio.AbstractEventLoop] = None

        logger.info(f"GeminiTranscriptionBackend initialized with model: {model}")

    def is_ready(self) -> bool:
        return self.credentials.is_set

    async def transcribe(self, payload: str, format_descriptor: str,
                         mime_type: str = "audio/wav") -> TranscriptionResult:
        start_time = time.monotonic()
        try:
            text = await self._request_transcription(payload, format_descriptor, mime_type)
        except TranscriptionError as e:
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            logger.error(f"Gemini transcription failed: {e.describe()}")
            return TranscriptionResult.failure(e.describe(), self.method_name, elapsed_ms)
        except Exception as e:
            elapsed_ms = int((time.monotonic() - start_time) * 1000)
            logger.error(f"Unexpected error during transcription: {e}", exc_info=True)
            return TranscriptionResult.failure(f"Unexpected error: {e}", self.method_name, elapsed_ms)

        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        if text is None:
            logger.warning("Gemini response contained no candidates")
            return TranscriptionResult.failure(NO_CANDIDATES, self.method_name, elapsed_ms)

        logger.debug(f"Transcription success: '{text}' (processing_time: {elapsed_ms}ms)")
        return TranscriptionResult(
            success=True,
            text=text,
            confidence=SUCCESS_CONFIDENCE if text else 0.0,
            method=self.method_name,
            processing_time_ms=elapsed_ms,
        )

    async def _request_transcription(self, payload: str, format_descriptor: str,
                                     mime_type: str) -> Optional[str]:
        if not self.credentials.is_set:
            raise MissingCredentialsError("Gemini API key not configured")

        body = self.build_request_body(payload, format_descriptor, mime_type)
        headers = {
            "x-goog-api-key": self.credentials.api_key,
            "Content-Type": "application/json",
        }
        response_text = await self._post(body, headers)
        return self.parse_response(response_text)

    async def _post(self, body: Dict[str, Any], headers: Dict[str, str]) -> str:
        session = self._get_session()
        try:
            async with session.post(self.endpoint, json=body, headers=headers) as response:
                response_text = await response.text()
                if not 200 <= response.status < 300:
                    raise NetworkError(f"HTTP {response.status}: {response.reason}")
                return response_text
        except aiohttp.ClientError as e:
            raise NetworkError(str(e) or type(e).__name__) from e
        except asyncio.TimeoutError as e:
            raise NetworkError(f"request timed out after {self.timeout.total}s") from e

    def _get_session(self) -> aiohttp.ClientSession:
        loop = asyncio.get_running_loop()
        if self._session is None or self._session.closed or self._session_loop is not loop:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._session_loop = loop
        return self._session

    @staticmethod
    def build_request_body(payload: str, format_descriptor: str, mime_type: str) -> Dict[str, Any]:
        prompt = (
            "You are a transcription AI. Please transcribe the attached audio.\n"
            f"Audio format: {format_descriptor}\n"
            "If the audio is unclear or contains no speech, respond with an empty message.\n"
            "Respond with only the transcription text, no additional commentary."
        )
        return {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {"inline_data": {"mime_type": mime_type, "data": payload}},
                    ]
                }
            ],
            "generationConfig": {
                "temperature": 0.1,
                "topK": 32,
                "topP": 0.95,
                "maxOutputTokens": 1024,
            },
        }

    @staticmethod
    def parse_response(response_text: str) -> Optional[str]:
        """Extract the transcript from a generateContent response.

        Returns:
            The transcript (possibly empty), or None if there are no candidates

        Raises:
            MalformedResponseError: if the body is not the expected JSON shape
        """
        try:
            response = json.loads(response_text)
        except ValueError as e:
            raise MalformedResponseError(str(e)) from e
        if not isinstance(response, dict):
            raise MalformedResponseError("response is not a JSON object")

        candidates = response.get("candidates")
        if not candidates:
            return None
        if not isinstance(candidates, list) or not isinstance(candidates[0], dict):
            raise MalformedResponseError("candidates is not a list of objects")

        content = candidates[0].get("content") or {}
        if not isinstance(content, dict):
            raise MalformedResponseError("candidate content is not an object")
        parts = content.get("parts") or []
        if not isinstance(parts, list):
            raise MalformedResponseError("candidate content has no parts list")

        texts = [part.get("text", "") for part in parts if isinstance(part, dict)]
        return "".join(t for t in texts if isinstance(t, str)).strip()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
        self._session_loop = None
        logger.debug("GeminiTranscriptionBackend session closed")
