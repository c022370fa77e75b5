"""
Engine Configuration
====================

Centralized configuration using Pydantic Settings.
All configuration is loaded from environment variables with sensible defaults.
"""

import json
from typing import Annotated, List, Optional
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


DEFAULT_FLOW_EXCLUDED_EDGE_TYPES = ["Imports", "Defines", "DependsOn", "UsesPackage"]


def _split_list(v):
    """Accept a JSON list, a comma-separated string, or a list."""
    if v is None:
        return []
    if isinstance(v, str):
        raw = v.strip()
        if raw.startswith("["):
            return [str(item).strip() for item in json.loads(raw) if str(item).strip()]
        return [item.strip() for item in raw.split(",") if item.strip()]
    return [str(item).strip() for item in v if str(item).strip()]


class Settings(BaseSettings):
    """
    Engine settings loaded from environment variables.
    
    Settings are validated using Pydantic and cached for performance.
    """
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    APP_NAME: str = "codegraph"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    # JSON lines for production log shipping; console rendering otherwise
    LOG_JSON: bool = False

    # -------------------------------------------------------------------------
    # Graph store
    # -------------------------------------------------------------------------
    # "memory" keeps the graph in process; "sql" uses DATABASE_URL
    GRAPH_STORE_BACKEND: str = "memory"

    @field_validator("GRAPH_STORE_BACKEND", mode="before")
    @classmethod
    def parse_backend(cls, v):
        backend = str(v or "memory").strip().lower()
        if backend not in {"memory", "sql"}:
            raise ValueError(f"GRAPH_STORE_BACKEND must be 'memory' or 'sql', got {v!r}")
        return backend

    # -------------------------------------------------------------------------
    # Database
    # -------------------------------------------------------------------------
    POSTGRES_HOST: str | None = None
    POSTGRES_PORT: int | None = None
    POSTGRES_USER: str | None = None
    POSTGRES_PASSWORD: str | None = None
    POSTGRES_DB: str | None = None

    # Full DSN override, e.g. sqlite+aiosqlite:///./codegraph.db
    POSTGRES_URL: Optional[str] = None
    POSTGRES_URL_SYNC: Optional[str] = None

    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Rows per multi-row upsert statement
    SQL_BULK_CHUNK_SIZE: int = Field(default=200, ge=1, le=5000)

    @property
    def DATABASE_URL(self) -> str:
        """Build the async database URL."""
        if self.POSTGRES_URL:
            return self.POSTGRES_URL
        if not self.POSTGRES_HOST:
            return "sqlite+aiosqlite:///:memory:"
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT or 5432}/{self.POSTGRES_DB}"
        )

    @property
    def DATABASE_URL_SYNC(self) -> str:
        """Build the sync database URL (for Alembic)."""
        if self.POSTGRES_URL_SYNC:
            return self.POSTGRES_URL_SYNC
        return (
            self.DATABASE_URL
            .replace("postgresql+asyncpg://", "postgresql://", 1)
            .replace("sqlite+aiosqlite://", "sqlite://", 1)
        )

    # -------------------------------------------------------------------------
    # Embeddings
    # -------------------------------------------------------------------------
    EMBEDDING_DIMENSIONS: int = Field(default=384, ge=1)

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------
    IMPACT_DEPTH: int = Field(default=2, ge=0, le=5)
    # Reverse-importer file expansion; 0 disables it
    IMPACT_IMPORTER_DEPTH: int = Field(default=0, ge=0, le=5)
    FLOW_GRAPH_DEPTH: int = Field(default=3, ge=0, le=10)
    FLOW_EXCLUDED_EDGE_TYPES: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_FLOW_EXCLUDED_EDGE_TYPES)
    )

    @field_validator("FLOW_EXCLUDED_EDGE_TYPES", mode="before")
    @classmethod
    def parse_excluded_edge_types(cls, v):
        """Parse excluded edge types from string or list."""
        if v is None:
            return list(DEFAULT_FLOW_EXCLUDED_EDGE_TYPES)
        return _split_list(v)

    # -------------------------------------------------------------------------
    # Helper Methods
    # -------------------------------------------------------------------------

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.APP_ENV == "production"

    @property
    def uses_sql_store(self) -> bool:
        return self.GRAPH_STORE_BACKEND == "sql"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    
    Uses lru_cache to ensure settings are only loaded once and reused.
    
    Returns:
        Settings: Validated settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
