"""Text-completion clients used by the analysis adapter."""

from budget_reports.clients.base import TextCompletionClient
from budget_reports.clients.claude import ClaudeClient
from budget_reports.clients.factory import create_completion_client
from budget_reports.clients.gemini import GeminiClient
from budget_reports.clients.openai_client import OpenAIClient

__all__ = [
    "TextCompletionClient",
    "ClaudeClient",
    "GeminiClient",
    "OpenAIClient",
    "create_completion_client",
]
