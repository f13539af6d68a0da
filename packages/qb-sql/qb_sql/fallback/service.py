"""Correction services.

Any object with ``correct(request) -> CorrectionResponse`` can serve; the
default one sends the prompt to an LLM client from ``qb_shared.llm``.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from qb_shared.llm import LLMClient, create_llm_client

from .prompts import CorrectionRequest, CorrectionResponse, build_correction_prompt, parse_correction_response

logger = logging.getLogger(__name__)


class CorrectionService(Protocol):
    def correct(self, request: CorrectionRequest) -> CorrectionResponse:
        ...


class LLMCorrectionService:
    """Correction service backed by an LLM client."""

    def __init__(self, client: LLMClient):
        self.client = client

    def correct(self, request: CorrectionRequest) -> CorrectionResponse:
        prompt = build_correction_prompt(request)
        logger.info("Requesting correction for %s (%d chars)", request.object_name, len(prompt))
        response = parse_correction_response(self.client.analyze(prompt))
        if not response.ok:
            logger.info("No correction for %s: %s", request.object_name, response.error)
        return response

    @classmethod
    def from_settings(
        cls,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> Optional["LLMCorrectionService"]:
        """Service for the configured provider, or None in manual mode."""
        client = create_llm_client(provider=provider, model=model)
        if client is None:
            return None
        return cls(client)
