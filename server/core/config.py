"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3010, ge=1024, le=65535)
    debug: bool = Field(default=False)
    workers: int = Field(default=1, ge=1, le=8)
    cors_origins: List[str] = Field(default=["http://localhost:3000"])

    # Application database (saved dataclips and add-ons)
    database_url: str = Field(default="sqlite:///./data/dataclips.db")
    database_echo: bool = Field(default=False)

    # Database that dataclips run against (falls back to DATABASE_URL)
    target_database_url: Optional[str] = Field(default=None)

    # Cache Configuration (process-local embedded store)
    cache_database_url: str = Field(default="sqlite://")
    query_cache_enabled: bool = Field(default=True)
    query_cache_ttl: int = Field(default=3600, ge=1)
    schema_cache_enabled: bool = Field(default=True)
    schema_cache_ttl: int = Field(default=7200, ge=1)
    cache_stats_window: int = Field(default=3600, ge=60)
    cache_metrics_retention: int = Field(default=86400, ge=3600)

    # Periodic sweep of expired cache entries and old metrics
    cleanup_enabled: bool = Field(default=True)
    cleanup_interval: int = Field(default=3600, ge=60)

    # Heroku Platform API (add-on sync)
    heroku_api_token: Optional[str] = Field(default=None)
    heroku_app_name: Optional[str] = Field(default=None)
    heroku_api_url: str = Field(default="https://api.heroku.com")
    heroku_timeout: int = Field(default=10, ge=1, le=120)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    @field_validator("database_url", "cache_database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for file-backed SQLite."""
        if v and v.startswith("sqlite") and ":///" in v:
            db_path = v.split("///")[1]
            if db_path and db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def query_target_url(self) -> str:
        """Connection descriptor used for dataclip execution and schema browsing."""
        return self.target_database_url or self.database_url

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
