from ai.providers.base import AIProvider
from ai.providers.anthropic import AnthropicProvider
from ai.providers.openai_provider import OpenAIProvider


def _looks_like_provider_model(provider_name: str, model_id: str | None) -> bool:
    if not model_id:
        return False
    m = model_id.strip().lower()
    if not m:
        return False
    if provider_name == "anthropic":
        return "claude" in m
    if provider_name == "openai":
        return m.startswith("gpt") or m.startswith("o") or "gpt" in m
    return True


def get_provider(
    provider_name: str,
    api_key: str,
    model: str | None = None,
    timeout_seconds: float = 120,
    transport=None,
) -> AIProvider:
    providers = {
        "anthropic": AnthropicProvider,
        "openai": OpenAIProvider,
    }
    cls = providers.get(provider_name)
    if not cls:
        raise ValueError(f"Unknown provider: {provider_name}")

    safe_model = model if _looks_like_provider_model(provider_name, model) else None
    return cls(api_key=api_key, model=safe_model, timeout_seconds=timeout_seconds, transport=transport)
