from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"  # development | test | staging | production
    APP_NAME: str = "LockIn"
    APP_URL: str = "https://lockin.app"
    DATABASE_URL: str = "sqlite:///data/lockin.db"
    DATA_DIR: Path = Path("data")
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:8050",
        "https://localhost:8050",
    ]
    LOG_LEVEL: str = "INFO"

    # Plan engine
    MAX_PLANS_PER_USER: int = 3
    DEFAULT_FLEX_DAYS_PER_MONTH: int = 2
    MAX_USER_RECORD_BYTES: int = 400_000
    DEFAULT_TIMEZONE: str = "Africa/Accra"
    DEFAULT_REMINDER_TIME: str = "09:00"
    DEFAULT_PHONE_COUNTRY_CODE: str = "233"

    # AI plan generation
    AI_PROVIDER: str = "anthropic"  # anthropic | openai
    AI_API_KEY: str = ""
    AI_MODEL: str | None = None
    AI_MAX_TOKENS: int = 8192
    AI_TIMEOUT_SECONDS: int = 120

    # Notifications
    SMS_API_URL: str = "https://sms.arkesel.com/sms/api"
    SMS_API_KEY: str = ""
    SMS_SENDER_ID: str = "LockIn"
    EMAIL_API_URL: str = "https://api.resend.com/emails"
    EMAIL_API_KEY: str = ""
    EMAIL_FROM: str = "LockIn <notifications@lockin.app>"
    NOTIFICATION_TIMEOUT_SECONDS: int = 10
    SEND_WELCOME_NOTIFICATIONS: bool = True

    SECURITY_HEADERS_ENABLED: bool = True
    SECURITY_CSP: str = (
        "default-src 'self'; "
        "img-src 'self' data: blob:; "
        "style-src 'self' 'unsafe-inline'; "
        "script-src 'self'; "
        "connect-src 'self' https:; "
        "frame-ancestors 'none'; "
        "base-uri 'self';"
    )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_production_like(self) -> bool:
        return (self.ENVIRONMENT or "").strip().lower() in {"production", "prod", "staging"}

    def validate_configuration(self) -> None:
        errors: list[str] = []
        if self.MAX_PLANS_PER_USER < 1:
            errors.append("MAX_PLANS_PER_USER must be at least 1")
        if self.DEFAULT_FLEX_DAYS_PER_MONTH < 0:
            errors.append("DEFAULT_FLEX_DAYS_PER_MONTH must not be negative")
        if self.MAX_USER_RECORD_BYTES < 1024:
            errors.append("MAX_USER_RECORD_BYTES must be at least 1024")
        if self.AI_PROVIDER not in {"anthropic", "openai"}:
            errors.append(f"AI_PROVIDER must be anthropic or openai, got {self.AI_PROVIDER!r}")
        if self.is_production_like:
            if not (self.AI_API_KEY or "").strip():
                errors.append("AI_API_KEY is required in production-like environments")
            if "*" in self.CORS_ORIGINS:
                errors.append("CORS_ORIGINS must not contain a wildcard in production-like environments")
        if errors:
            joined = "; ".join(errors)
            raise RuntimeError(f"Invalid configuration: {joined}")


settings = Settings()
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
