"""Smoke tests: every qb-shared module imports without errors."""


class TestQbSharedImports:
    """Test that all qb-shared modules import without errors."""

    def test_import_root(self):
        import qb_shared
        assert hasattr(qb_shared, "__version__")
        assert hasattr(qb_shared, "Settings")
        assert hasattr(qb_shared, "Base")

    def test_import_database_models(self):
        from qb_shared.database.models import Base, ControlColumnMap, RuntimeState, SHARED_SCHEMA
        assert RuntimeState.__table__.schema == SHARED_SCHEMA
        assert ControlColumnMap.__tablename__ == "control_column_map"
        assert "shared.runtime_state" in Base.metadata.tables

    def test_runtime_state_natural_key(self):
        from qb_shared.database.models import RuntimeState
        keys = [c.name for c in RuntimeState.__table__.primary_key.columns]
        assert keys == ["session_id", "table_name", "column_name"]

    def test_import_database_connection(self):
        from qb_shared.database import get_engine, get_session_context, init_db
        assert callable(get_engine)
        assert callable(get_session_context)
        assert callable(init_db)

    def test_import_llm(self):
        from qb_shared.llm import AnthropicClient, LLMClient, OpenAIClient, create_llm_client
        assert LLMClient is not None
        assert callable(create_llm_client)
        assert AnthropicClient is not None and OpenAIClient is not None


class TestDatabaseUrl:

    def test_postgres_scheme_is_made_async(self):
        from qb_shared.config import Settings
        from qb_shared.database import get_database_url

        settings = Settings(_env_file=None, database_url="postgres://u:p@db/app")
        assert get_database_url(settings) == "postgresql+asyncpg://u:p@db/app"

    def test_built_from_components(self):
        from qb_shared.config import Settings
        from qb_shared.database import get_database_url

        settings = Settings(_env_file=None, database_url="", db_host="db", db_password="pw", db_name="app")
        assert get_database_url(settings) == "postgresql+asyncpg://querybridge:pw@db:5432/app"

    def test_remote_host_requires_password(self):
        import pytest
        from qb_shared.config import Settings
        from qb_shared.database import get_database_url

        settings = Settings(_env_file=None, database_url="", db_host="db.example.com", db_password="")
        with pytest.raises(ValueError):
            get_database_url(settings)
