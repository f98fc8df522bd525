from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Mail Management System"
    MODE: str = "development"  # development | test | production
    LOG_LEVEL: str = "INFO"

    # Banco de dados / cache
    DATABASE_URL: str = "sqlite+aiosqlite:///./app.sqlite3"
    REDIS_URL: str = "redis://localhost:6379/0"

    CORS_ORIGINS: List[str] = ["http://localhost:5173"]

    # JWT: um segredo por classe de token
    ACCESS_TOKEN_SECRET: str = "change-me-access-secret"
    REFRESH_TOKEN_SECRET: str = "change-me-refresh-secret"
    RESET_TOKEN_SECRET: str = "change-me-reset-secret"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    RESET_TOKEN_EXPIRE_MINUTES: int = 5

    # Senha / OTP
    OTP_EXPIRE_MINUTES: int = 10
    PASSWORD_MIN_LENGTH: int = 8
    BCRYPT_ROUNDS: int = 12
    OTP_BCRYPT_ROUNDS: int = 10

    # Email
    EMAIL_BACKEND: str = "console"  # console | smtp
    SMTP_SERVER: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: Optional[str] = None
    SMTP_FROM_NAME: str = "Mail App"
    SMTP_TIMEOUT_SECONDS: float = 10.0

    RATE_LIMIT_ENABLED: bool = True
    ACCESS_LOG_ENABLED: bool = True
    SLOW_REQUEST_THRESHOLD_SECONDS: float = 1.0

    # Sentry
    SENTRY_DSN: Optional[str] = None
    SENTRY_ENVIRONMENT: Optional[str] = None
    SENTRY_TRACES_SAMPLE_RATE: float = Field(0.1, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def check_distinct_secrets(self) -> "Settings":
        secrets = [self.ACCESS_TOKEN_SECRET, self.REFRESH_TOKEN_SECRET, self.RESET_TOKEN_SECRET]
        if len(set(secrets)) != len(secrets):
            raise ValueError("ACCESS_TOKEN_SECRET, REFRESH_TOKEN_SECRET and RESET_TOKEN_SECRET must differ")
        return self


settings = Settings()
