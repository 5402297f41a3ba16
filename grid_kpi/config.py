"""Application configuration management."""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = Field(default="postgresql+psycopg2://localhost:5432/grid")
    # Separate store for the KPI tables; falls back to the primary store.
    kpi_database_url: Optional[str] = Field(default=None)
    db_schema: Optional[str] = Field(default=None)
    db_sslmode: Optional[str] = Field(default=None)
    db_pool_size: int = Field(default=5)
    db_pool_timeout: int = Field(default=30)
    db_connect_timeout: int = Field(default=10)
    query_timeout_ms: int = Field(default=15000)

    kpi_anchor_levels: str = Field(default="circle,section")
    cors_origins: str = Field(default="*")
    log_level: str = Field(default="INFO")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)

    @field_validator("database_url", "kpi_database_url")
    @classmethod
    def _normalise_postgres_scheme(cls, value: Optional[str]) -> Optional[str]:
        # Hosting platforms hand out postgres:// URLs, which SQLAlchemy rejects.
        if value and value.startswith("postgres://"):
            return "postgresql+psycopg2://" + value[len("postgres://"):]
        return value

    @property
    def anchor_levels(self) -> List[str]:
        return [level.strip() for level in self.kpi_anchor_levels.split(",") if level.strip()]

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()
