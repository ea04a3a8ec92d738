"""Interface shared by the text-completion clients."""

from typing import Protocol


class TextCompletionClient(Protocol):
    """Single request/response text completion.

    Implementations raise ``UpstreamError`` on transport or provider failure.
    """

    async def complete(self, prompt: str) -> str: ...
