from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

class Settings(BaseSettings):
    APP_NAME: str = "RFQ Messaging"
    ENVIRONMENT: str = "dev"
    LOG_LEVEL: str = "INFO"
    DB_ECHO_LOG: bool = False

    # Object store backend: "sql" persists blobs in the database, "memory" keeps them in-process
    STORE_BACKEND: str = "sql"

    # Bucket names; empty means derive from ENVIRONMENT
    PUBLIC_BUCKET: str = ""
    PRIVATE_BUCKET: str = ""

    # Database settings
    DB_USER: str = "user"
    DB_PASSWORD: str = "password"
    DB_HOST: str = "postgres"
    DB_PORT: int = 5432
    DB_NAME: str = "rfq_messaging_db"
    DATABASE_URL_OVERRIDE: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    @property
    def public_bucket(self) -> str:
        return self.PUBLIC_BUCKET or f"app-public-{self.ENVIRONMENT}"

    @property
    def private_bucket(self) -> str:
        return self.PRIVATE_BUCKET or f"app-private-{self.ENVIRONMENT}"

    # Event listing
    EVENTS_PAGE_MAX: int = 200
    EVENTS_DEFAULT_LIMIT: int = 100
    STORE_LIST_PAGE_SIZE: int = 1000

    # Idempotency records older than this are treated as absent
    IDEMPOTENCY_TTL_SECONDS: int = 86400

    # Notifications: "log" only logs outgoing mail, "http" posts it to a relay webhook
    NOTIFY_BACKEND: str = "log"
    NOTIFY_WEBHOOK_URL: str = "http://mail-relay:8025/send"
    NOTIFY_AUTH_TOKEN: Optional[str] = None
    NOTIFY_FROM_EMAIL: str = "no-reply@rfq.example.com"
    NOTIFY_TIMEOUT_SECONDS: float = 5.0

    CORS_ALLOW_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", extra='ignore', env_file_encoding='utf-8')

settings = Settings()
