from typing import Any

import httpx

from ai.providers.base import AIProvider
from services.errors import UpstreamServiceError


class OpenAIProvider(AIProvider):
    """OpenAI / GPT AI provider."""

    BASE_URL = "https://api.openai.com/v1/chat/completions"
    DEFAULT_MODEL = "gpt-4o"

    def __init__(self, api_key: str, model: str | None = None, timeout_seconds: float = 120, transport=None):
        super().__init__(api_key, model, timeout_seconds, transport)
        self._headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def complete(self, prompt: str, system: str = "", max_tokens: int = 4096) -> dict:
        messages = [{"role": "user", "content": prompt}]
        if system:
            messages.insert(0, {"role": "system", "content": system})
        model = self.get_model()
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "response_format": {"type": "json_object"},
        }
        payload.update(self._token_limit_field(model, max_tokens))

        try:
            async with self._client() as client:
                resp = await client.post(self.BASE_URL, headers=self._headers, json=payload)
                if self._should_retry_with_alt_token_field(resp):
                    resp = await client.post(
                        self.BASE_URL,
                        headers=self._headers,
                        json=self._swap_token_limit_field(payload),
                    )
        except httpx.HTTPError as exc:
            raise UpstreamServiceError(f"OpenAI API unreachable: {exc}") from exc
        if resp.status_code != 200:
            raise UpstreamServiceError(f"OpenAI API error ({resp.status_code}): {resp.text[:300]}")
        data = resp.json()

        choice = data.get("choices", [{}])[0]
        usage = data.get("usage", {})
        return {
            "content": choice.get("message", {}).get("content", "") or "",
            "tokens_in": usage.get("prompt_tokens", 0),
            "tokens_out": usage.get("completion_tokens", 0),
            "model": data.get("model", model),
            "stop_reason": choice.get("finish_reason"),
        }

    def _token_limit_field(self, model: str, limit: int) -> dict[str, int]:
        m = (model or "").strip().lower()
        if m.startswith("o") or m.startswith("gpt-5") or m.startswith("gpt-4.1"):
            return {"max_completion_tokens": limit}
        return {"max_tokens": limit}

    def _swap_token_limit_field(self, payload: dict[str, Any]) -> dict[str, Any]:
        swapped = dict(payload)
        if "max_tokens" in swapped:
            swapped["max_completion_tokens"] = swapped.pop("max_tokens")
        elif "max_completion_tokens" in swapped:
            swapped["max_tokens"] = swapped.pop("max_completion_tokens")
        return swapped

    def _should_retry_with_alt_token_field(self, resp: httpx.Response) -> bool:
        if resp.status_code != 400:
            return False
        text = (resp.text or "").lower()
        return "unsupported parameter" in text and ("max_tokens" in text or "max_completion_tokens" in text)
