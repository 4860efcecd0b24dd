from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "ExpressTrafic"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    DATABASE_URL: str
    REDIS_URL: str = "redis://localhost:6379/0"
    SECRET_KEY: str = "replace-me"
    ALEMBIC_LOCATION: str = "alembic"
    # JWT / auth settings
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    # Rate limiting for login attempts (max attempts per window)
    LOGIN_RATE_LIMIT_ATTEMPTS: int = 5
    LOGIN_RATE_LIMIT_WINDOW_SECONDS: int = 900
    # Per-client request limits (max requests per window)
    RESERVATION_RATE_LIMIT: int = 10
    RESERVATION_RATE_LIMIT_WINDOW_SECONDS: int = 60
    API_RATE_LIMIT: int = 100
    API_RATE_LIMIT_WINDOW_SECONDS: int = 900

    # Mail: MAIL_* wins, EMAIL_* is the legacy family
    MAIL_HOST: Optional[str] = None
    MAIL_PORT: Optional[int] = None
    MAIL_USER: Optional[str] = None
    MAIL_PASS: Optional[str] = None
    EMAIL_HOST: Optional[str] = None
    EMAIL_PORT: Optional[int] = None
    EMAIL_USER: Optional[str] = None
    EMAIL_PASS: Optional[str] = None
    MAIL_FROM: str = "ExpressTrafic <no-reply@expresstrafic.com>"
    MAIL_USE_TLS: bool = True
    MAIL_TIMEOUT_SECONDS: int = 10

    FRONTEND_URL: str = "http://localhost:3000"
    SUPPORT_EMAIL: str = "support@expresstrafic.com"

    SMS_ENABLED: bool = False
    SMS_API_URL: Optional[str] = None
    SMS_API_KEY: Optional[str] = None
    SMS_SENDER: str = "ExpressTrafic"
    DEFAULT_PHONE_CODE: str = "+33"

    RESERVATION_HOLD_MINUTES: int = 10
    RESERVATION_SWEEP_INTERVAL_SECONDS: int = 60
    VERIFICATION_TOKEN_TTL_HOURS: int = 24
    VERIFICATION_RESEND_MAX_PER_HOUR: int = 3

    SENTRY_DSN: str = ""

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def mail_host(self) -> Optional[str]:
        return self.MAIL_HOST or self.EMAIL_HOST

    @property
    def mail_port(self) -> int:
        return self.MAIL_PORT or self.EMAIL_PORT or 587

    @property
    def mail_user(self) -> Optional[str]:
        return self.MAIL_USER or self.EMAIL_USER

    @property
    def mail_password(self) -> Optional[str]:
        return self.MAIL_PASS or self.EMAIL_PASS


settings = Settings()
