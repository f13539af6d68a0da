"""LLM client implementations for QueryBridge.

Provides a unified interface for the fallback-correction providers:
- Anthropic (Claude)
- OpenAI
- OpenRouter (OpenAI-compatible)
"""

from .protocol import LLMClient
from .anthropic import AnthropicClient
from .openai import OpenAIClient
from .factory import create_llm_client

__all__ = [
    # Protocol
    "LLMClient",
    # Clients
    "AnthropicClient",
    "OpenAIClient",
    # Factory
    "create_llm_client",
]
