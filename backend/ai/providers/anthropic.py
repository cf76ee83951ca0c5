import httpx

from ai.providers.base import AIProvider
from services.errors import UpstreamServiceError


class AnthropicProvider(AIProvider):
    """Anthropic / Claude AI provider."""

    BASE_URL = "https://api.anthropic.com/v1/messages"
    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    def __init__(self, api_key: str, model: str | None = None, timeout_seconds: float = 120, transport=None):
        super().__init__(api_key, model, timeout_seconds, transport)
        self._headers = {
            "x-api-key": self.api_key,
            "anthropic-version": "2023-06-01",
            "content-type": "application/json",
        }

    async def complete(self, prompt: str, system: str = "", max_tokens: int = 4096) -> dict:
        payload: dict = {
            "model": self.get_model(),
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system

        try:
            async with self._client() as client:
                resp = await client.post(self.BASE_URL, headers=self._headers, json=payload)
        except httpx.HTTPError as exc:
            raise UpstreamServiceError(f"Anthropic API unreachable: {exc}") from exc
        if resp.status_code != 200:
            raise UpstreamServiceError(f"Anthropic API error ({resp.status_code}): {resp.text[:300]}")
        data = resp.json()

        content = ""
        for block in data.get("content", []):
            if block.get("type") == "text":
                content += block["text"]

        usage = data.get("usage", {})
        return {
            "content": content,
            "tokens_in": usage.get("input_tokens", 0),
            "tokens_out": usage.get("output_tokens", 0),
            "model": data.get("model", payload["model"]),
            "stop_reason": data.get("stop_reason"),
        }
