# marketplace/core/config.py
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./marketplace.db"
    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # identity provider: JWT secret for local verification, or a userinfo
    # endpoint when the secret is not shared with us
    AUTH_JWT_SECRET: str = ""
    AUTH_JWT_ALG: str = "HS256"
    AUTH_USERINFO_URL: str = ""
    AUTH_API_KEY: str = ""
    AUTH_TIMEOUT_SECONDS: float = 5.0

    # object storage
    AZURE_STORAGE_CONNECTION_STRING: str = ""
    AZURE_CONTAINER_NAME: str = "marketplace"
    STORAGE_PUBLIC_BASE_URL: str = ""
    STORAGE_TIMEOUT_SECONDS: int = 20
    STORAGE_RETRY_TOTAL: int = 2

    MEDIA_MAX_IMAGES: int = 3
    MEDIA_MAX_UPLOAD_MB: float = 10
    MEDIA_MAX_SIZE_MB: float = 2
    MEDIA_MAX_DIMENSION: int = 1200
    MEDIA_QUALITY: int = 85

    LISTING_TTL_DAYS: int = 30
    PAGE_SIZE: int = 12

    # email: "console" logs messages, "gmail" sends through the Gmail API
    EMAIL_MODE: str = "console"
    EMAIL_TIMEOUT_SECONDS: float = 10.0
    EMAIL_SENDER_ADDRESS: str = ""
    GMAIL_CLIENT_ID: str = ""
    GMAIL_CLIENT_SECRET: str = ""
    GMAIL_REFRESH_TOKEN: str = ""
    NOTIFY_ON_WITHDRAWAL: bool = True
    MARKETPLACE_NAME: str = "Campus Marketplace"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
