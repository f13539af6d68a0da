"""OpenAI (and OpenAI-compatible) client for the fallback corrector."""

import logging
import time
from typing import Dict, Optional

from .protocol import CORRECTION_SYSTEM_PROMPT, token_usage
from .rate_limit import llm_call_guard

logger = logging.getLogger(__name__)


class OpenAIClient:
    """Chat-completions client; ``base_url`` points it at OpenRouter or similar."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: Optional[str] = None,
        max_tokens: int = 4096,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.last_usage: Dict[str, int] = {}
        logger.info("Initialized OpenAIClient with model=%s, base_url=%s", model, base_url)

    def analyze(self, prompt: str) -> str:
        from openai import OpenAI

        started = time.monotonic()
        with llm_call_guard():
            client = OpenAI(api_key=self.api_key, base_url=self.base_url)
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": CORRECTION_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.max_tokens,
                temperature=0.0,
            )

        text = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        self.last_usage = token_usage(
            getattr(usage, "prompt_tokens", 0),
            getattr(usage, "completion_tokens", 0),
        ) if usage else {}

        logger.info(
            "OpenAI correction reply: model=%s, %.2fs, %d chars",
            self.model, time.monotonic() - started, len(text),
        )
        return text
