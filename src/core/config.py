"""Application configuration management using Pydantic Settings."""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="classio-chat", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root logging level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins",
    )

    # Supabase
    supabase_url: str = Field(..., description="Supabase project URL")
    supabase_secret_key: str = Field(..., description="Supabase secret key for backend operations")
    supabase_signing_key_jwk: str = Field(default="", description="Supabase signing key JWK (JSON string) for ES256 verification")
    supabase_jwt_secret: str = Field(default="", description="Shared secret for HS256 token verification")
    jwt_algorithm: str = Field(default="ES256", description="JWT algorithm (ES256 or HS256)")
    realtime_schema: str = Field(default="public", description="Postgres schema watched by Realtime channels")

    # Chat
    chat_page_size: int = Field(default=50, description="Messages fetched per page")
    chat_max_open_threads: int = Field(default=20, description="Message threads kept open per session")
    chat_session_ttl_seconds: int = Field(default=1800, description="Idle seconds before a chat session is evicted")
    chat_session_cleanup_interval_seconds: int = Field(
        default=300,
        description="Seconds between idle chat session sweeps",
    )

    @model_validator(mode="after")
    def check_jwt_key_material(self) -> "Settings":
        """Normalize the JWT algorithm name.

        The key material itself is checked lazily when the first token is
        verified so that health checks can run without auth configured.
        """
        self.jwt_algorithm = self.jwt_algorithm.upper()
        if self.jwt_algorithm not in ("ES256", "HS256"):
            raise ValueError(f"Unsupported JWT algorithm: {self.jwt_algorithm}")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()
