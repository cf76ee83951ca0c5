from abc import ABC, abstractmethod

import httpx


class AIProvider(ABC):
    """Abstract base class for text-completion providers used for plan generation."""

    DEFAULT_MODEL: str = ""

    def __init__(
        self,
        api_key: str,
        model: str | None = None,
        timeout_seconds: float = 120,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self._model = model
        self._timeout = timeout_seconds
        self._transport = transport

    @abstractmethod
    async def complete(self, prompt: str, system: str = "", max_tokens: int = 4096) -> dict:
        """Send a single-turn prompt.

        Returns:
            dict with content, tokens_in, tokens_out, model.

        Raises:
            UpstreamServiceError when the provider answers with a non-200 status
            or cannot be reached.
        """
        ...

    def get_model(self) -> str:
        return self._model or self.DEFAULT_MODEL

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
