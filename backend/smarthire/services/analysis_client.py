"""Gemini analysis client - the billable operation behind the access gate.

Forwards the client's generateContent request unchanged and returns the raw
Gemini response. Implements exponential backoff retries (3 attempts, 1s then
2s between them). Only the last error is surfaced to the caller.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from smarthire.errors import UpstreamAnalysisFailure

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1


class AnalysisError(Exception):
    """One failed attempt against the Gemini API."""


def extract_report_text(response: Dict[str, Any]) -> str:
    """Pull candidates[0].content.parts[0].text out of a Gemini response."""
    try:
        text = response["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        raise UpstreamAnalysisFailure("AI returned invalid data.")
    if not isinstance(text, str) or not text:
        raise UpstreamAnalysisFailure("AI returned invalid data.")
    return text


class AnalysisClient:
    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._transport = transport
        self._sleep = sleep

    @property
    def url(self) -> str:
        return f"{GEMINI_API_BASE}/{self.model}:generateContent"

    async def generate(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run one analysis with retries.

        Raises:
            UpstreamAnalysisFailure: key missing or every attempt failed
        """
        if not self.api_key:
            logger.error("GOOGLE_API_KEY not configured")
            raise UpstreamAnalysisFailure("Server configuration error: API key missing")

        last_error: Optional[Exception] = None
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for attempt in range(MAX_RETRIES):
                try:
                    return await self._post(client, payload)
                except (AnalysisError, httpx.HTTPError) as e:
                    last_error = e
                    logger.warning(f"Gemini call failed (attempt {attempt + 1}/{MAX_RETRIES}): {e}")

                if attempt < MAX_RETRIES - 1:
                    backoff = INITIAL_BACKOFF_SECONDS * (2 ** attempt)
                    await self._sleep(backoff)

        logger.error(f"Gemini analysis failed after {MAX_RETRIES} attempts: {last_error}")
        raise UpstreamAnalysisFailure(str(last_error) or "Analysis failed")

    async def _post(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await client.post(self.url, params={"key": self.api_key}, json=payload)
        try:
            data = response.json()
        except ValueError:
            raise AnalysisError(f"Gemini returned non-JSON response (HTTP {response.status_code})")

        error = data.get("error") if isinstance(data, dict) else None
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise AnalysisError(message or f"HTTP {response.status_code}")
        if response.status_code >= 400:
            raise AnalysisError(f"HTTP {response.status_code}")
        if not isinstance(data, dict):
            raise AnalysisError("Gemini returned an unexpected response")
        return data
