"""QueryBridge Shared Infrastructure.

This package provides shared components for QueryBridge:
- config: Shared settings management
- database: SQLAlchemy models and async connection management for the
  runtime-state and control-mapping tables
- llm: LLM client implementations (Anthropic, OpenAI, OpenRouter)
"""

__version__ = "0.1.0"

from .config.settings import Settings, get_settings
from .database.models import Base

__all__ = [
    "Settings",
    "get_settings",
    "Base",
]
