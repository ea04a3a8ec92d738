"""Build the configured text-completion client."""

from budget_reports.clients.base import TextCompletionClient
from budget_reports.clients.claude import ClaudeClient
from budget_reports.clients.gemini import GeminiClient
from budget_reports.clients.openai_client import OpenAIClient
from budget_reports.config import get_settings
from budget_reports.errors import ValidationError


def create_completion_client(provider: str | None = None) -> TextCompletionClient:
    """Return a client for ``provider``, defaulting to ``ANALYSIS_PROVIDER``."""
    provider = provider or get_settings().analysis_provider
    if provider == "gemini":
        return GeminiClient()
    if provider == "claude":
        return ClaudeClient()
    if provider == "openai":
        return OpenAIClient()
    raise ValidationError(f"Unknown analysis provider: {provider}")
