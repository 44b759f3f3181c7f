"""
config.py — Postcraft configuration
All environment variables are declared here.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === SERVER ===
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # === CORS ===
    # Credentials are allowed, so "*" is not accepted by browsers here.
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # === SESSIONS ===
    SESSION_SECRET: str = "CHANGE_ME_SESSION_SECRET"
    SESSION_ALGORITHM: str = "HS256"
    SESSION_COOKIE_NAME: str = "postcraft_session"
    SESSION_TTL_SECONDS: int = 7 * 24 * 60 * 60
    SESSION_COOKIE_SECURE: bool = True

    # === DATABASE ===
    # SQLite by default, any async SQLAlchemy URL in production
    DATABASE_URL: str = "sqlite+aiosqlite:///./postcraft.db"

    # === CREDITS ===
    DEFAULT_CREDITS: int = 5

    # === IMAGE PROVIDER ===
    OPENAI_API_KEY: str = ""
    OPENAI_IMAGE_MODEL: str = "dall-e-3"
    OPENAI_IMAGE_QUALITY: str = "standard"
    OPENAI_TIMEOUT: float = 120.0
    OPENAI_MOCK_MODE: bool = False
    PLACEHOLDER_IMAGE_URL: str = "https://picsum.photos/{width}/{height}?random={nonce}"

    # Optional prompt rewrite through a chat model
    PROMPT_REFINER_ENABLED: bool = False
    OPENAI_CHAT_MODEL: str = "gpt-4o"

    # === STORAGE ===
    # Choose: "remote" | "local" | "s3"
    STORAGE_BACKEND: str = "remote"
    STORAGE_DIR: str = "./storage/images"
    BASE_IMAGE_URL: str = "http://localhost:8000/api/image"

    # AWS S3 (optional)
    AWS_ACCESS_KEY: str = ""
    AWS_SECRET_KEY: str = ""
    AWS_BUCKET: str = "postcraft-images"
    AWS_REGION: str = "us-east-1"


settings = Settings()
