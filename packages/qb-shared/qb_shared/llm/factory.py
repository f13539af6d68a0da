"""Factory function for creating LLM clients."""

from typing import Callable, Dict, Optional, Tuple

from ..config import get_settings
from .anthropic import AnthropicClient
from .openai import OpenAIClient
from .protocol import LLMClient

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

# provider -> (display name, default model, constructor(api_key, model))
_PROVIDERS: Dict[str, Tuple[str, str, Callable[[str, str], LLMClient]]] = {
    "anthropic": (
        "Anthropic", "claude-sonnet-4-20250514",
        lambda key, model: AnthropicClient(api_key=key, model=model),
    ),
    "openai": (
        "OpenAI", "gpt-4o",
        lambda key, model: OpenAIClient(api_key=key, model=model),
    ),
    "openrouter": (
        "OpenRouter", "anthropic/claude-sonnet-4",
        lambda key, model: OpenAIClient(api_key=key, model=model, base_url=OPENROUTER_BASE_URL),
    ),
}


def create_llm_client(
    provider: Optional[str] = None,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
) -> Optional[LLMClient]:
    """Create the client backing the fallback corrector.

    With no provider, the configured one (``QB_LLM_PROVIDER``) is used and
    ``None`` is returned in manual mode or when nothing is configured.

    Raises:
        ValueError: Unknown provider, or no API key for it.
    """
    settings = get_settings()

    if provider is None:
        if settings.is_manual_mode:
            return None
        provider, default_model, default_key = settings.get_llm_provider_config()
        model = model or default_model
        if api_key is None:
            api_key = default_key

    if not provider:
        return None
    if provider not in _PROVIDERS:
        raise ValueError(f"Unknown LLM provider: {provider}")

    display, default_model, build = _PROVIDERS[provider]
    if api_key is None:
        api_key = getattr(settings, f"{provider}_api_key")
    if not api_key:
        raise ValueError(f"{display} API key required")
    return build(api_key, model or default_model)
