# src/itorero/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",            # auto-load .env (optional; process env wins)
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    APP_NAME: str = "itorero-admin"
    APP_VERSION: str = "1.0.0"
    ENV: str = "dev"                   # "dev" | "prod"

    # CORS (comma separated list of origins)
    CORS_ORIGINS: str = "http://localhost:3000"

    # Sensitive-operation rate limiting
    RATE_LIMIT_BACKEND: str = "memory"  # "memory" | "redis"
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    RATE_LIMIT_MAX_REQUESTS: int = 5
    RATE_LIMIT_PREFIX: str = "ratelimit:"

    # Redis (only used when RATE_LIMIT_BACKEND=redis)
    REDIS_URL: str = "redis://localhost:6379/0"

    # Login lockout
    LOGIN_MAX_ATTEMPTS: int = 5
    LOGIN_LOCK_MINUTES: int = 120

    # Audit listing
    AUDIT_DEFAULT_LIMIT: int = 100
    AUDIT_MAX_LIMIT: int = 500

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def is_prod(self) -> bool:
        return self.ENV.strip().lower() == "prod"


settings = Settings()
