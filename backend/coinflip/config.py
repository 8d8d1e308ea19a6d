"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class RoundsConfig(BaseModel):
    """Round timing and payout parameters."""

    duration_seconds: int = Field(default=60, gt=0)
    payout_multiplier: float = Field(default=2.0, gt=0)


class SchedulerConfig(BaseModel):
    """Settlement trigger cadence."""

    settle_interval_seconds: int = Field(default=5, gt=0)
    max_instances: int = Field(default=2, ge=1)  # overlapping cycles are safe


class AdminConfig(BaseModel):
    """Privileged operation parameters."""

    min_password_length: int = 6
    phone_email_domain: str = "royall11.app"
    users_page_size: int = 1000


class DatabaseConfig(BaseModel):
    """Connection pool and statement limits."""

    pool_size: int = 5
    max_overflow: int = 10
    pool_recycle_seconds: int = 3600
    statement_timeout_ms: int = 10_000


class Settings(BaseSettings):
    """Main configuration class.

    The Supabase credentials and the database URL have no defaults: a process
    started without them fails with a ``ValidationError``.
    """

    # Paths
    data_dir: Path = Path("data")

    # Secrets
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_service_role_key: str = Field(
        ..., description="Service role key for privileged operations"
    )
    supabase_anon_key: str = Field(
        ..., description="Public API key used to act on behalf of the caller"
    )
    database_url: str = Field(..., description="Postgres connection URL")
    logfire_token: str = ""

    # Runtime
    environment: str = "development"
    log_level: str = "INFO"
    store_backend: Literal["postgres", "memory"] = "postgres"
    http_timeout_seconds: float = 15.0
    host: str = "0.0.0.0"
    port: int = 8000

    # Nested configuration sections
    rounds: RoundsConfig = Field(default_factory=RoundsConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("supabase_url", "supabase_service_role_key", "supabase_anon_key", "database_url")
    @classmethod
    def require_non_empty(cls, v: str) -> str:
        """Reject blank secrets the same way as missing ones."""
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("supabase_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("data_dir", mode="after")
    @classmethod
    def resolve_data_dir(cls, v: Path) -> Path:
        """Resolve data directory to absolute path."""
        return v.resolve()

    @property
    def async_database_url(self) -> str:
        """Database URL using the asyncpg driver."""
        url = self.database_url
        for prefix in ("postgresql+psycopg2://", "postgresql://", "postgres://"):
            if url.startswith(prefix):
                return "postgresql+asyncpg://" + url[len(prefix):]
        return url

    def load_yaml_config(self) -> None:
        """Load and merge the optional YAML overlay from data_dir/config.yaml."""
        config_path = self.data_dir / "config.yaml"

        if not config_path.exists():
            logger.debug(f"No config overlay at {config_path}, using defaults")
            return

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)

            if not yaml_config:
                logger.warning(f"Empty config file: {config_path}")
                return

            for section_name in ["rounds", "scheduler", "admin", "database"]:
                if section_name in yaml_config:
                    section = getattr(self, section_name)

                    section_dict = section.model_dump()
                    section_dict.update(yaml_config[section_name])

                    setattr(self, section_name, section.__class__(**section_dict))

            logger.info(f"Loaded configuration from {config_path}")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise


@lru_cache()
def get_settings() -> Settings:
    """Get singleton Settings instance."""
    settings = Settings()
    settings.load_yaml_config()
    return settings
