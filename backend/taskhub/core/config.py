"""Application configuration"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # API
    API_PREFIX: str = "/api"
    PROJECT_NAME: str = "Taskhub"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Security
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 1440  # 24 hours
    BCRYPT_ROUNDS: int = 12

    # Database
    # WHY: Every service owns its own store. The template is formatted with
    # the service name, e.g. "users" -> sqlite+aiosqlite:///./data/users.db
    DATABASE_URL_TEMPLATE: str = "sqlite+aiosqlite:///./data/{service}.db"

    # Action bus
    ACTION_TIMEOUT_SECONDS: float = 5.0
    ACTION_RETRY_ATTEMPTS: int = 3  # Only for idempotent read-only actions
    ACTION_RETRY_BACKOFF_SECONDS: float = 0.05

    # Tokens
    VERIFICATION_TOKEN_TTL_SECONDS: int = 24 * 60 * 60
    PASSWORD_RESET_TOKEN_TTL_SECONDS: int = 60 * 60
    TOKEN_SWEEP_INTERVAL_SECONDS: int = 15 * 60

    # Attachments
    UPLOAD_DIR: str = "./public/attachments/tasks"

    # Mail
    MAIL_FROM: str = "no-reply@taskhub.local"

    # CORS
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    def database_url(self, service: str) -> str:
        """
        Build the database URL for a single service's store.

        WHY: asyncpg is the async driver for PostgreSQL, so plain
        postgresql:// URLs are rewritten the same way for every service.
        """
        url = self.DATABASE_URL_TEMPLATE.format(service=service)
        return url.replace("postgresql://", "postgresql+asyncpg://")


settings = Settings()
