"""OpenAI GPT text-completion client.

Also supports OpenAI-compatible APIs (LM Studio and the like) via a custom base_url.
"""

from typing import Any

import openai
import structlog

from budget_reports.config import get_settings
from budget_reports.errors import UpstreamError

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = "You are a financial analysis assistant. Respond with JSON only."


class OpenAIClient:
    """Client for OpenAI's chat completions API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        if api_key is None and settings.openai_api_key is not None:
            api_key = settings.openai_api_key.get_secret_value()
        if not api_key:
            raise UpstreamError("OPENAI_API_KEY is not configured")
        self._api_key = api_key
        self._base_url = base_url
        self._model = model or settings.gpt_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature or settings.llm_temperature

        client_kwargs: dict[str, Any] = {"api_key": self._api_key}
        if self._base_url:
            client_kwargs["base_url"] = self._base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        client_name = "lm_studio" if self._base_url else "openai"
        self._logger = logger.bind(client=client_name, model=self._model)

    def _parse_response(self, response: openai.types.chat.ChatCompletion) -> str:
        if not response.choices:
            raise UpstreamError("Empty response from OpenAI API")
        return response.choices[0].message.content or ""

    async def complete(self, prompt: str) -> str:
        """Submit a prompt and return the raw response text."""
        self._logger.debug("generating_completion", prompt_chars=len(prompt))

        # GPT-5+ and o-series models take max_completion_tokens
        is_reasoning_model = self._model.startswith(("gpt-5", "o3", "o4"))
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        if is_reasoning_model:
            kwargs["max_completion_tokens"] = self._max_tokens
        else:
            kwargs["max_tokens"] = self._max_tokens
            kwargs["temperature"] = self._temperature

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            self._logger.error("api_error", error=str(e))
            raise UpstreamError("OpenAI request failed", details=str(e)) from e

        self._logger.info(
            "completion_generated",
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
        )
        return self._parse_response(response)
