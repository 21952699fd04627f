from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, model_validator
from functools import lru_cache


# Known weak secrets that must never be used outside development
WEAK_SECRET_KEYS = {
    "changeme",
    "secret",
    "password",
    "development-secret-key-change-in-production",
    "your-secret-key",
    "test",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/complaint_desk"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # Auth
    SECRET_KEY: str = "development-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 120

    # CORS
    FRONTEND_URL: str = "http://localhost:3000"

    # Email (Brevo)
    BREVO_API_KEY: str | None = None
    EMAIL_FROM_ADDRESS: str = "noreply@complaint-desk.local"
    EMAIL_FROM_NAME: str = "Complaint Management System"
    EMAIL_SEND_TIMEOUT_SECONDS: float = Field(15.0, gt=0)

    # Cron trigger
    CRON_SECRET: str | None = None

    @field_validator("CRON_SECRET", mode="before")
    @classmethod
    def blank_cron_secret_is_unset(cls, v):
        """A blank CRON_SECRET leaves the cron trigger disabled."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    # SLA
    COMPLAINT_SLA_HOURS: int = Field(48, ge=1)
    SLA_SCHEDULER_ENABLED: bool = False
    SLA_SWEEP_INTERVAL_HOURS: int = Field(2, ge=1)
    SLA_SWEEP_CONCURRENCY: int = Field(5, ge=1, le=50)

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    DOCS_ENABLED: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @model_validator(mode="after")
    def validate_production(self) -> "Settings":
        """Reject insecure settings when running in production."""
        if self.ENVIRONMENT == "production":
            if self.SECRET_KEY in WEAK_SECRET_KEYS:
                raise ValueError("SECRET_KEY uses a known weak value")
            if len(self.SECRET_KEY) < 32:
                raise ValueError("SECRET_KEY must be at least 32 characters in production")
            self.DEBUG = False
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def sqlalchemy_echo(self) -> bool:
        """SQL echo only in non-production debug mode (never leaks credentials in prod logs)."""
        return self.DEBUG and not self.is_production


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
