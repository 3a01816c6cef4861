"""Application configuration."""
from pydantic_settings import BaseSettings
from functools import lru_cache


DEV_JWT_SECRET = "dev-only-change-me"


class Settings(BaseSettings):
    """Application settings."""

    # App
    APP_NAME: str = "Defect Tracker"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    API_PREFIX: str = "/api/v1"
    ALLOWED_ORIGINS: str = "*"

    # Key-value store ("sql" or "redis")
    KV_BACKEND: str = "sql"
    DATABASE_URL: str = "sqlite:///./defect_tracker.db"
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10
    KV_TABLE_NAME: str = "kv_store"

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Identity provider ("local" or "supabase")
    IDENTITY_PROVIDER: str = "local"
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    SUPABASE_TIMEOUT_SECONDS: int = 10

    # JWT (local identity provider)
    JWT_SECRET_KEY: str = DEV_JWT_SECRET
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    JWT_LEEWAY_SECONDS: int = 30  # clock skew tolerance for exp validation

    # Signup policy
    PASSWORD_MIN_LENGTH: int = 6

    # Derived views
    TIMELINE_MAX_DAYS: int = 30
    RECENT_DEFECTS_LIMIT: int = 5

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
