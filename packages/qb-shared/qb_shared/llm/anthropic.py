"""Anthropic Claude client for the fallback corrector."""

import logging
import time
from typing import Dict

from .protocol import CORRECTION_SYSTEM_PROMPT, token_usage
from .rate_limit import llm_call_guard

logger = logging.getLogger(__name__)


class AnthropicClient:
    """Messages API client.

    Args:
        api_key: Anthropic API key.
        model: Model name.
        max_tokens: Output token cap per correction.
    """

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-20250514", max_tokens: int = 4096):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.last_usage: Dict[str, int] = {}
        logger.info("Initialized AnthropicClient with model=%s", model)

    def analyze(self, prompt: str) -> str:
        import anthropic

        logger.debug("Correction request to Anthropic (%d chars)", len(prompt))
        started = time.monotonic()
        with llm_call_guard():
            client = anthropic.Anthropic(api_key=self.api_key)
            message = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=CORRECTION_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )

        text = "".join(block.text for block in message.content if getattr(block, "type", "") == "text")
        usage = getattr(message, "usage", None)
        self.last_usage = token_usage(
            getattr(usage, "input_tokens", 0),
            getattr(usage, "output_tokens", 0),
        ) if usage is not None else {}

        logger.info(
            "Anthropic correction reply: model=%s, %.2fs, %d chars",
            self.model, time.monotonic() - started, len(text),
        )
        return text
