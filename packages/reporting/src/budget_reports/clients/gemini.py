"""Google Gemini text-completion client.

Uses the google-genai SDK (v1.0+) through its asyncio surface.
"""

from typing import Any

import structlog
from google import genai
from google.genai import types

from budget_reports.config import get_settings
from budget_reports.errors import UpstreamError

logger = structlog.get_logger(__name__)


class GeminiClient:
    """Client for Google's Gemini API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        if api_key is None and settings.google_api_key is not None:
            api_key = settings.google_api_key.get_secret_value()
        if not api_key:
            raise UpstreamError("GOOGLE_API_KEY is not configured")
        self._api_key = api_key
        self._model_name = model or settings.gemini_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature or settings.llm_temperature

        self._client = genai.Client(api_key=self._api_key)
        self._logger = logger.bind(client="gemini", model=self._model_name)

    def _parse_response(self, response: Any) -> str:
        """Return the text of the first candidate."""
        if not response.candidates:
            raise UpstreamError("Invalid response structure from Gemini API")

        candidate = response.candidates[0]
        parts = candidate.content.parts if candidate.content else None
        text = "".join(part.text for part in parts or [] if getattr(part, "text", None))
        if not text:
            raise UpstreamError("Invalid response structure from Gemini API")
        return text

    async def complete(self, prompt: str) -> str:
        """Submit a prompt and return the raw response text."""
        self._logger.debug("generating_completion", prompt_chars=len(prompt))

        config = types.GenerateContentConfig(
            max_output_tokens=self._max_tokens,
            temperature=self._temperature,
        )

        try:
            response = await self._client.aio.models.generate_content(
                model=self._model_name,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            self._logger.error("api_error", error=str(e))
            raise UpstreamError("Gemini request failed", details=str(e)) from e

        text = self._parse_response(response)

        usage = getattr(response, "usage_metadata", None)
        self._logger.info(
            "completion_generated",
            input_tokens=getattr(usage, "prompt_token_count", 0) or 0,
            output_tokens=getattr(usage, "candidates_token_count", 0) or 0,
        )
        return text
