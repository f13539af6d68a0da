"""Fallback correction of conversion errors through an external service."""

from .corrector import FallbackCorrector
from .prompts import CorrectionRequest, CorrectionResponse, build_correction_prompt, parse_correction_response
from .service import CorrectionService, LLMCorrectionService

__all__ = [
    "FallbackCorrector",
    "CorrectionRequest",
    "CorrectionResponse",
    "CorrectionService",
    "LLMCorrectionService",
    "build_correction_prompt",
    "parse_correction_response",
]
