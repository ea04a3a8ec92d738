"""Claude (Anthropic) text-completion client."""

import anthropic
import structlog

from budget_reports.config import get_settings
from budget_reports.errors import UpstreamError

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = "You are a financial analysis assistant. Respond with JSON only."


class ClaudeClient:
    """Client for Anthropic's Claude API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        if api_key is None and settings.anthropic_api_key is not None:
            api_key = settings.anthropic_api_key.get_secret_value()
        if not api_key:
            raise UpstreamError("ANTHROPIC_API_KEY is not configured")
        self._api_key = api_key
        self._model = model or settings.claude_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = temperature or settings.llm_temperature

        self._client = anthropic.AsyncAnthropic(api_key=self._api_key)
        self._logger = logger.bind(client="claude", model=self._model)

    def _parse_response(self, response: anthropic.types.Message) -> str:
        """Concatenate the text blocks of a message."""
        return "".join(block.text for block in response.content if block.type == "text")

    async def complete(self, prompt: str) -> str:
        """Submit a prompt and return the raw response text."""
        self._logger.debug("generating_completion", prompt_chars=len(prompt))

        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            self._logger.error("api_error", error=str(e))
            raise UpstreamError("Claude request failed", details=str(e)) from e

        self._logger.info(
            "completion_generated",
            stop_reason=response.stop_reason,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )
        return self._parse_response(response)
