"""Protocol definition for LLM clients.

The fallback corrector only needs ``analyze(prompt) -> str``; any provider
client implementing :class:`LLMClient` can back it.
"""

from typing import Dict, Protocol

# Shared by every provider: the corrector parses the reply as JSON.
CORRECTION_SYSTEM_PROMPT = (
    "You convert Microsoft Access SQL into PostgreSQL DDL. "
    "Return ONLY valid JSON, no markdown fences, no commentary."
)


class LLMClient(Protocol):
    """Protocol for LLM client implementations.

    Attributes:
        last_usage: Token counts from the most recent call
            (prompt_tokens, completion_tokens, total_tokens).
    """

    last_usage: Dict[str, int]

    def analyze(self, prompt: str) -> str:
        """Send prompt to the model and return the text reply."""
        ...


def token_usage(prompt_tokens: int = 0, completion_tokens: int = 0) -> Dict[str, int]:
    prompt_tokens = prompt_tokens or 0
    completion_tokens = completion_tokens or 0
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }
