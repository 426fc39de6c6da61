from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")

    REBEN_ENV: str = "development"
    REBEN_MODE: str = "api"
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    API_CORS_ORIGINS: str = "http://localhost:3000"
    REBEN_SECRETS_KEY: str | None = None
    EMAIL_FROM: str | None = None
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False
    NOTIFY_BATCH_LIMIT: int = 50
    NOTIFY_MAX_RETRIES: int = 3
    NOTIFY_BASE_DELAY_SECONDS: int = 300
    NOTIFY_MAX_DELAY_SECONDS: int = 21600
    NOTIFY_CONCURRENCY: int = 5
    NOTIFY_HTTP_TIMEOUT_SECONDS: float = 10.0
    NOTIFY_SENT_RETENTION_DAYS: int = 30
    NOTIFY_STALE_CLAIM_SECONDS: int = 900
    WEBHOOK_PRODUCT_NAME: str = "REBEN"
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    AI_MAX_RETRIES: int = 3
    AI_BASE_DELAY_MS: int = 1000
    SUPABASE_URL: str
    SUPABASE_ANON_KEY: str
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    SUPABASE_ISSUER: str | None = None
    SUPABASE_JWKS_URL: str | None = None
    WORKER_POLL_INTERVAL_SECONDS: int = 30

    @model_validator(mode="after")
    def apply_supabase_defaults(self) -> "Settings":
        if not self.SUPABASE_URL.strip():
            raise ValueError("SUPABASE_URL must be configured")
        if not self.SUPABASE_ANON_KEY.strip():
            raise ValueError("SUPABASE_ANON_KEY must be configured")

        if not self.SUPABASE_ISSUER:
            self.SUPABASE_ISSUER = f"{self.SUPABASE_URL.rstrip('/')}/auth/v1"
        if not self.SUPABASE_JWKS_URL:
            self.SUPABASE_JWKS_URL = (
                f"{self.SUPABASE_ISSUER.rstrip('/')}/.well-known/jwks.json"
            )
        if self.REBEN_ENV.strip().lower() == "production":
            if not (self.EMAIL_FROM or "").strip():
                raise ValueError("EMAIL_FROM must be configured in production")
        if self.NOTIFY_MAX_RETRIES < 1:
            raise ValueError("NOTIFY_MAX_RETRIES must be at least 1")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.API_CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def webhook_user_agent(self) -> str:
        return f"{self.WEBHOOK_PRODUCT_NAME}-Webhook/1.0"

    def webhook_header(self, suffix: str) -> str:
        return f"X-{self.WEBHOOK_PRODUCT_NAME}-{suffix}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
