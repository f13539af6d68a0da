"""Shared application configuration for QueryBridge."""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Shared application settings loaded from environment.

    Target-database connection settings (QB_POSTGRES_*) are read by
    ``qb_sql.execution.factory.PostgresConfig.from_env``.
    """

    # Infrastructure database (runtime state + control mapping tables)
    database_url: str = ""
    db_host: str = "localhost"
    db_port: str = "5432"
    db_name: str = "querybridge"
    db_user: str = "querybridge"
    db_password: str = ""
    db_echo: bool = False
    serverless: bool = False

    # Import engine
    target_schema: str = "public"
    max_import_passes: int = 20
    import_workers: int = 1
    correction_timeout_seconds: float = 60.0
    session_setting: str = "app.session_id"
    artifacts_dir: str = "runs"

    # LLM Configuration (fallback corrector)
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    openrouter_api_key: str = ""
    llm_provider: str = ""
    llm_model: str = ""
    manual_mode: bool = False
    llm_max_concurrent_calls: int = 8
    llm_call_stagger_seconds: float = 0.5

    class Config:
        env_prefix = "QB_"
        env_file = ".env"

    @property
    def has_database(self) -> bool:
        """Check if the infrastructure database is configured."""
        return bool(self.database_url) or bool(self.db_password)

    @property
    def is_manual_mode(self) -> bool:
        """Check if running in manual mode (no fallback corrector available)."""
        if self.manual_mode:
            return True
        return not self.has_llm_provider

    @property
    def has_llm_provider(self) -> bool:
        """Check if an LLM provider is configured."""
        return bool(self.llm_provider)

    def get_llm_provider_config(self) -> tuple[str, str, str]:
        """Get the active LLM provider, model, and API key.

        Returns:
            Tuple of (provider, model, api_key).
        """
        provider = self.llm_provider
        model = self.llm_model

        if provider == "anthropic":
            return provider, model or "claude-sonnet-4-20250514", self.anthropic_api_key
        elif provider == "openai":
            return provider, model or "gpt-4o", self.openai_api_key
        elif provider == "openrouter":
            return provider, model or "anthropic/claude-sonnet-4", self.openrouter_api_key
        return "", "", ""


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
