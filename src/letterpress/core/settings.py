"""Environment-driven configuration for the API, the delivery workers and the CLIs."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Every tunable read from the process environment or a local .env file."""

    # Application metadata
    app_name: str = Field(default="Letterpress", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Operator tokens
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Database
    database_url: str = Field(default="sqlite:///./letterpress.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Email gateway
    email_base_url: str = Field(default="http://localhost:8025", alias="EMAIL_BASE_URL")
    email_sender: str = Field(default="newsletter@example.com", alias="EMAIL_SENDER")
    email_authorization_token: str = Field(default="", alias="EMAIL_AUTHORIZATION_TOKEN")
    email_timeout_seconds: float = Field(default=10.0, alias="EMAIL_TIMEOUT_SECONDS")

    # Issue delivery worker
    delivery_worker_enabled: bool = Field(default=False, alias="DELIVERY_WORKER_ENABLED")
    delivery_worker_count: int = Field(default=1, alias="DELIVERY_WORKER_COUNT")
    delivery_idle_seconds: float = Field(default=10.0, alias="DELIVERY_IDLE_SECONDS")
    delivery_retry_backoff_seconds: float = Field(
        default=1.0,
        alias="DELIVERY_RETRY_BACKOFF_SECONDS",
    )
    # Transient failures before a task is dropped
    delivery_max_attempts: int = Field(default=20, ge=1, alias="DELIVERY_MAX_ATTEMPTS")

    # Saved idempotent responses older than this are eligible for pruning
    idempotency_ttl_hours: int = Field(default=48, alias="IDEMPOTENCY_TTL_HOURS")

    # CORS
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Database URL usable by the synchronous engine and Alembic.

        An asyncpg URL is rewritten to the psycopg driver.
        """
        url = self.database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url


settings = Settings()  # type: ignore[call-arg]
